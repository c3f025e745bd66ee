"""
store/base.py - Data access contract for the Dot feedback service.

Every route and service talks to storage through DataStore. Implementations:
  - InMemoryStore  (store/memory.py)    process-lifetime lists and dicts
  - DocumentStore  (store/document.py)  PostgreSQL via SQLAlchemy async

Design principles:
  - All methods are async (suspension points for the event loop)
  - Methods accept and return domain Pydantic objects, never ORM rows
  - Logs only session_id / user_id - never message text or user names
  - No retries: storage failures propagate to the caller
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from dotfeedback.agents.conversation_agent.schemas import (
    ChatMessage,
    ConversationState,
    StructuredResponse,
)
from dotfeedback.agents.session_agent.schemas import Session

DEFAULT_RETENTION_LIMIT = 100


class DataStore(ABC):
    """Uniform CRUD over sessions, answers, transcripts and conversation state."""

    backend_name: str = "abstract"

    def __init__(self, retention_limit: int = DEFAULT_RETENTION_LIMIT) -> None:
        if retention_limit < 1:
            raise ValueError("retention_limit must be at least 1")
        self.retention_limit = retention_limit

    # -- Sessions -----------------------------------------------------------

    @abstractmethod
    async def save_session(self, session: Session) -> Session:
        """Persist a new session record."""

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        """Return the session or None (caller raises NotFoundError)."""

    @abstractmethod
    async def list_sessions(self) -> List[Session]:
        """All sessions, newest first."""

    # -- Structured responses ----------------------------------------------

    @abstractmethod
    async def save_response(self, response: StructuredResponse) -> StructuredResponse:
        ...

    @abstractmethod
    async def get_responses(
        self, session_id: str, user_id: Optional[str] = None
    ) -> List[StructuredResponse]:
        """Answers for a session (optionally one participant), oldest first."""

    # -- Chat messages ------------------------------------------------------

    @abstractmethod
    async def save_chat_message(self, message: ChatMessage) -> ChatMessage:
        """
        Append a message, then evict the oldest messages of the same
        (session_id, user_id) pair until at most retention_limit remain.
        """

    @abstractmethod
    async def get_chat_messages(self, session_id: str, user_id: str) -> List[ChatMessage]:
        """Retained messages for one participant, ordered by timestamp ascending."""

    # -- Conversation state -------------------------------------------------

    @abstractmethod
    async def get_conversation_state(
        self, session_id: str, user_id: str
    ) -> Optional[ConversationState]:
        ...

    @abstractmethod
    async def save_conversation_state(self, state: ConversationState) -> ConversationState:
        """Upsert keyed by (session_id, user_id). Last write wins."""

    async def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
        return None
