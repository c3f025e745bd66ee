"""
models/conversation_state.py - SQLAlchemy ORM model for participant progress.

Table: conversation_states
Exactly one row per (session_id, user_id). Upserted on every transition,
never deleted.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from dotfeedback.database import Base, JSONDocument


class ConversationStateORM(Base):
    __tablename__ = "conversation_states"

    session_id: Mapped[str] = mapped_column(String(16), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    current_question_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    question_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    completed_question_ids: Mapped[list] = mapped_column(
        JSONDocument,
        nullable=False,
        default=list,
        comment="De-duplicated list of completed question ids",
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
