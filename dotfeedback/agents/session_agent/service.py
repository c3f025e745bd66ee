"""
service.py - Session creation and lookup.

Pure business logic: no HTTPException here, the HTTP layer is routes.py.
"""
import logging
import secrets
import string
from typing import List, Optional

import redis.asyncio as aioredis

from dotfeedback.agents.session_agent.schemas import Question, Session
from dotfeedback.cache import get_cached_session, set_cached_session
from dotfeedback.exceptions import NotFoundError, ValidationFailure
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)

SESSION_CODE_ALPHABET = string.ascii_uppercase + string.digits
SESSION_CODE_LENGTH = 6


def generate_session_code() -> str:
    """Short uppercase alphanumeric code. Collisions are not checked."""
    return "".join(secrets.choice(SESSION_CODE_ALPHABET) for _ in range(SESSION_CODE_LENGTH))


def build_session(name: str, question_texts: List[str]) -> Session:
    """
    Validate admin input and build a new Session with ordered questions.

    Raises ValidationFailure when the name is blank or no question text remains.
    """
    name = (name or "").strip()
    texts = [t.strip() for t in question_texts if t and t.strip()]
    problems = []
    if not name:
        problems.append({"field": "name", "issue": "Session name is required"})
    if not texts:
        problems.append({"field": "questions", "issue": "At least one question is required"})
    if problems:
        raise ValidationFailure("Session name and questions are required", details=problems)

    session_id = generate_session_code()
    return Session(
        session_id=session_id,
        name=name,
        questions=[
            Question(id=f"{session_id}-q{order}", text=text, order=order)
            for order, text in enumerate(texts)
        ],
    )


async def create_session(
    store: DataStore,
    redis: Optional[aioredis.Redis],
    name: str,
    question_texts: List[str],
) -> Session:
    session = build_session(name, question_texts)
    await store.save_session(session)
    await set_cached_session(redis, session)
    logger.info("Created session session_id=%s questions=%d", session.session_id, len(session.questions))
    return session


async def fetch_session(
    store: DataStore,
    redis: Optional[aioredis.Redis],
    session_id: str,
) -> Session:
    """Read-through lookup: Redis cache first, then the store. Raises NotFoundError."""
    cached = await get_cached_session(redis, session_id)
    if cached is not None:
        return cached
    session = await store.get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    await set_cached_session(redis, session)
    return session
