"""
models/chat_message.py - SQLAlchemy ORM model for the conversation transcript.

Table: chat_messages
One row per utterance (participant or assistant). Scoped by
(session_id, user_id) and capped per pair by the store's retention rule.

id is an autoincrement integer so rows written within the same clock tick
still sort in insertion order (ORDER BY timestamp, id).
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dotfeedback.database import Base


class ChatMessageORM(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_session_user", "session_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(16), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sender: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="'user' or 'assistant' - mirrors Sender enum",
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
