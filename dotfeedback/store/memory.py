"""
store/memory.py - Process-local DataStore.

State lives exactly as long as the process. A single asyncio.Lock guards the
append-then-evict and upsert sections so they are atomic with respect to other
coroutines on the same loop.

Returned objects are deep copies: callers mutating a returned model never
change stored state.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from dotfeedback.agents.conversation_agent.schemas import (
    ChatMessage,
    ConversationState,
    StructuredResponse,
)
from dotfeedback.agents.session_agent.schemas import Session
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)


class InMemoryStore(DataStore):
    backend_name = "memory"

    def __init__(self, retention_limit: int = 100) -> None:
        super().__init__(retention_limit)
        self._lock = asyncio.Lock()
        self._sessions: Dict[str, Session] = {}
        self._responses: List[StructuredResponse] = []
        self._messages: Dict[Tuple[str, str], List[ChatMessage]] = {}
        self._states: Dict[Tuple[str, str], ConversationState] = {}

    # -- Sessions -----------------------------------------------------------

    async def save_session(self, session: Session) -> Session:
        async with self._lock:
            self._sessions[session.session_id] = session.model_copy(deep=True)
        logger.info("Saved session session_id=%s questions=%d", session.session_id, len(session.questions))
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def list_sessions(self) -> List[Session]:
        ordered = sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in ordered]

    # -- Structured responses ----------------------------------------------

    async def save_response(self, response: StructuredResponse) -> StructuredResponse:
        async with self._lock:
            self._responses.append(response.model_copy(deep=True))
        logger.info(
            "Saved response session_id=%s user_id=%s question_id=%s",
            response.session_id, response.user_id, response.question_id,
        )
        return response

    async def get_responses(
        self, session_id: str, user_id: Optional[str] = None
    ) -> List[StructuredResponse]:
        return [
            r.model_copy(deep=True)
            for r in self._responses
            if r.session_id == session_id and (user_id is None or r.user_id == user_id)
        ]

    # -- Chat messages ------------------------------------------------------

    async def save_chat_message(self, message: ChatMessage) -> ChatMessage:
        key = (message.session_id, message.user_id)
        async with self._lock:
            history = self._messages.setdefault(key, [])
            history.append(message.model_copy(deep=True))
            # Stable sort keeps insertion order for equal timestamps
            history.sort(key=lambda m: m.timestamp)
            overflow = len(history) - self.retention_limit
            if overflow > 0:
                del history[:overflow]
                logger.debug(
                    "Evicted %d chat messages session_id=%s user_id=%s",
                    overflow, message.session_id, message.user_id,
                )
        return message

    async def get_chat_messages(self, session_id: str, user_id: str) -> List[ChatMessage]:
        return [m.model_copy(deep=True) for m in self._messages.get((session_id, user_id), [])]

    # -- Conversation state -------------------------------------------------

    async def get_conversation_state(
        self, session_id: str, user_id: str
    ) -> Optional[ConversationState]:
        state = self._states.get((session_id, user_id))
        return state.model_copy(deep=True) if state else None

    async def save_conversation_state(self, state: ConversationState) -> ConversationState:
        async with self._lock:
            self._states[(state.session_id, state.user_id)] = state.model_copy(deep=True)
        logger.debug(
            "Saved conversation state session_id=%s user_id=%s index=%d question_mode=%s",
            state.session_id, state.user_id, state.current_question_index, state.question_mode,
        )
        return state
