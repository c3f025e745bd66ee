"""
models/session.py - SQLAlchemy ORM model for feedback sessions.

Table: sessions
One row per admin-created session. Questions are embedded as a JSON document
(list of {id, text, order}) because they are never queried or updated on
their own.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from dotfeedback.database import Base, JSONDocument


class SessionORM(Base):
    """
    ORM model for a feedback session.

    id is the short participant-facing code (e.g. 'K3F9QZ'), not a UUID.
    created_at is indexed for the newest-first admin listing.
    """
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(
        String(16),
        primary_key=True,
        comment="Short uppercase session code typed in by participants",
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    questions: Mapped[list] = mapped_column(
        JSONDocument,
        nullable=False,
        default=list,
        comment="Ordered list of {id, text, order} question documents",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
