"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundError(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ValidationFailure(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


class AICollaboratorError(AppException):
    """The AI provider failed, timed out, or returned output outside the contract."""

    code = "AI_PROVIDER_ERROR"
    status_code = 502


class GraphValidationError(AICollaboratorError):
    code = "INVALID_GRAPH"


class StorageError(AppException):
    code = "STORAGE_ERROR"
    status_code = 500
