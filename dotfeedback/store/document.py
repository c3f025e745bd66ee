"""
store/document.py - PostgreSQL-backed DataStore (SQLAlchemy 2.0 async).

Each public method opens its own AsyncSession from the injected factory,
commits on success and rolls back on failure. SQLAlchemy errors surface as
StorageError; they are never retried.

Design principles:
  - No raw SQL: ORM-only queries
  - Returns domain Pydantic objects (not ORM instances) so callers are persistence-agnostic
  - Logs only session_id / user_id - never message text or names
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from dotfeedback.agents.conversation_agent.schemas import (
    ChatMessage,
    ConversationState,
    Sender,
    StructuredResponse,
)
from dotfeedback.agents.session_agent.schemas import Question, Session
from dotfeedback.exceptions import StorageError
from dotfeedback.models.chat_message import ChatMessageORM
from dotfeedback.models.conversation_state import ConversationStateORM
from dotfeedback.models.session import SessionORM
from dotfeedback.models.structured_response import StructuredResponseORM
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    """SQLite drops tzinfo on read; every stored timestamp is UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class DocumentStore(DataStore):
    backend_name = "document"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retention_limit: int = 100,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        super().__init__(retention_limit)
        self._session_factory = session_factory
        self._engine = engine

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as db:
            try:
                yield db
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("Storage operation failed: %s", type(exc).__name__, exc_info=True)
                raise StorageError("Storage backend unavailable") from exc

    # ---------------------------------------------------------------------------
    # Sessions
    # ---------------------------------------------------------------------------

    async def save_session(self, session: Session) -> Session:
        async with self._transaction() as db:
            db.add(
                SessionORM(
                    id=session.session_id,
                    name=session.name,
                    questions=[q.model_dump() for q in session.questions],
                    created_at=session.created_at,
                )
            )
        logger.info("Saved session session_id=%s questions=%d", session.session_id, len(session.questions))
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._transaction() as db:
            orm = await db.get(SessionORM, session_id)
            return self._to_session(orm) if orm is not None else None

    async def list_sessions(self) -> List[Session]:
        async with self._transaction() as db:
            result = await db.execute(select(SessionORM).order_by(SessionORM.created_at.desc()))
            return [self._to_session(row) for row in result.scalars().all()]

    @staticmethod
    def _to_session(orm: SessionORM) -> Session:
        return Session(
            session_id=orm.id,
            name=orm.name,
            questions=[Question.model_validate(q) for q in orm.questions or []],
            created_at=_aware(orm.created_at),
        )

    # ---------------------------------------------------------------------------
    # Structured responses
    # ---------------------------------------------------------------------------

    async def save_response(self, response: StructuredResponse) -> StructuredResponse:
        async with self._transaction() as db:
            db.add(
                StructuredResponseORM(
                    session_id=response.session_id,
                    user_id=response.user_id,
                    user_name=response.user_name,
                    question_id=response.question_id,
                    question_text=response.question_text,
                    response=response.response,
                    created_at=response.timestamp,
                )
            )
        logger.info(
            "Saved response session_id=%s user_id=%s question_id=%s",
            response.session_id, response.user_id, response.question_id,
        )
        return response

    async def get_responses(
        self, session_id: str, user_id: Optional[str] = None
    ) -> List[StructuredResponse]:
        query = select(StructuredResponseORM).where(StructuredResponseORM.session_id == session_id)
        if user_id is not None:
            query = query.where(StructuredResponseORM.user_id == user_id)
        query = query.order_by(StructuredResponseORM.created_at.asc())

        async with self._transaction() as db:
            result = await db.execute(query)
            return [
                StructuredResponse(
                    session_id=row.session_id,
                    user_id=row.user_id,
                    user_name=row.user_name,
                    question_id=row.question_id,
                    question_text=row.question_text,
                    response=row.response,
                    timestamp=_aware(row.created_at),
                )
                for row in result.scalars().all()
            ]

    # ---------------------------------------------------------------------------
    # Chat messages
    # ---------------------------------------------------------------------------

    async def save_chat_message(self, message: ChatMessage) -> ChatMessage:
        pair = (
            ChatMessageORM.session_id == message.session_id,
            ChatMessageORM.user_id == message.user_id,
        )
        async with self._transaction() as db:
            db.add(
                ChatMessageORM(
                    session_id=message.session_id,
                    user_id=message.user_id,
                    user_name=message.user_name,
                    sender=message.sender.value,
                    message=message.message,
                    timestamp=message.timestamp,
                )
            )
            await db.flush()

            count = await db.scalar(select(func.count()).select_from(ChatMessageORM).where(*pair))
            overflow = (count or 0) - self.retention_limit
            if overflow > 0:
                oldest = await db.execute(
                    select(ChatMessageORM.id)
                    .where(*pair)
                    .order_by(ChatMessageORM.timestamp.asc(), ChatMessageORM.id.asc())
                    .limit(overflow)
                )
                ids = list(oldest.scalars().all())
                await db.execute(delete(ChatMessageORM).where(ChatMessageORM.id.in_(ids)))
                logger.debug(
                    "Evicted %d chat messages session_id=%s user_id=%s",
                    len(ids), message.session_id, message.user_id,
                )
        return message

    async def get_chat_messages(self, session_id: str, user_id: str) -> List[ChatMessage]:
        async with self._transaction() as db:
            result = await db.execute(
                select(ChatMessageORM)
                .where(
                    ChatMessageORM.session_id == session_id,
                    ChatMessageORM.user_id == user_id,
                )
                .order_by(ChatMessageORM.timestamp.asc(), ChatMessageORM.id.asc())
            )
            return [
                ChatMessage(
                    session_id=row.session_id,
                    user_id=row.user_id,
                    user_name=row.user_name,
                    sender=Sender(row.sender),
                    message=row.message,
                    timestamp=_aware(row.timestamp),
                )
                for row in result.scalars().all()
            ]

    # ---------------------------------------------------------------------------
    # Conversation state
    # ---------------------------------------------------------------------------

    async def get_conversation_state(
        self, session_id: str, user_id: str
    ) -> Optional[ConversationState]:
        async with self._transaction() as db:
            orm = await db.get(ConversationStateORM, (session_id, user_id))
            if orm is None:
                return None
            return ConversationState(
                session_id=orm.session_id,
                user_id=orm.user_id,
                current_question_index=orm.current_question_index,
                question_mode=orm.question_mode,
                completed_question_ids=list(orm.completed_question_ids or []),
                last_updated=_aware(orm.last_updated),
            )

    async def save_conversation_state(self, state: ConversationState) -> ConversationState:
        async with self._transaction() as db:
            orm = await db.get(ConversationStateORM, (state.session_id, state.user_id))
            if orm is None:
                orm = ConversationStateORM(session_id=state.session_id, user_id=state.user_id)
                db.add(orm)
            orm.current_question_index = state.current_question_index
            orm.question_mode = state.question_mode
            # New list object so SQLAlchemy sees the JSON column as dirty
            orm.completed_question_ids = list(state.completed_question_ids)
            orm.last_updated = state.last_updated
        logger.debug(
            "Saved conversation state session_id=%s user_id=%s index=%d question_mode=%s",
            state.session_id, state.user_id, state.current_question_index, state.question_mode,
        )
        return state
