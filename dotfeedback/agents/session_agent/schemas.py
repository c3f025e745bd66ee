"""
schemas.py - Session Pydantic v2 data contracts.

Defines:
  - CamelModel            (shared base: snake_case in Python, camelCase on the wire)
  - Question              (one admin question, embedded in a Session)
  - Session               (feedback session, immutable after creation)
  - CreateSessionRequest  (incoming admin request)

Wire format keeps the camelCase field names the browser client already uses
(sessionId, createdAt, ...). populate_by_name=True lets Python code construct
models with snake_case keywords.
"""
from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Session records
# ---------------------------------------------------------------------------

class Question(CamelModel):
    """A single admin question. Never persisted outside its Session."""

    id: str = Field(description="Stable identifier, '{session_id}-q{order}'")
    text: str
    order: int = Field(ge=0, description="Zero-based position, unique within the session")


class Session(CamelModel):
    """
    Feedback session created by an admin.

    session_id is the short code participants type in to join. It is
    generated without a collision check (36^6 space).
    """

    session_id: str
    name: str
    questions: List[Question] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def question_at(self, index: int) -> Question:
        return self.questions[index]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateSessionRequest(CamelModel):
    """Admin request body for POST /api/sessions."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: str = Field(..., max_length=200)
    questions: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("questions")
    @classmethod
    def _drop_blank_questions(cls, value: List[str]) -> List[str]:
        return [q.strip() for q in value if q and q.strip()]


__all__ = [
    "CamelModel",
    "Question",
    "Session",
    "CreateSessionRequest",
    "utcnow",
]
