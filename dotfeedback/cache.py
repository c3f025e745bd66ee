"""
cache.py - Redis caching layer for session records.

Namespace conventions:
  session:{session_id}   → serialized Session JSON     TTL 24h (86400s)

Sessions are immutable after creation, so the cache never needs
invalidation; TTL only bounds memory.

Design:
  - Uses redis.asyncio (async client, part of redis-py 5.x)
  - Pool created once in lifespan, stored on app.state.redis (None when REDIS_URL is empty)
  - Helper functions take the client as a param - no module-level global state
  - Cache errors are logged and treated as misses: the store stays authoritative
"""
import logging
from typing import Optional

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from dotfeedback.agents.session_agent.schemas import Session
from dotfeedback.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# TTL / key prefix constants
# ---------------------------------------------------------------------------
SESSION_TTL: int = 86400   # 24 hours
SESSION_PREFIX = "session"


def make_session_key(session_id: str) -> str:
    """Build Redis key for a session record: session:{session_id}"""
    return f"{SESSION_PREFIX}:{session_id}"


# ---------------------------------------------------------------------------
# Pool factory - called once in lifespan
# ---------------------------------------------------------------------------

async def create_redis_pool() -> Optional[aioredis.Redis]:
    """
    Create and return an async Redis connection pool, or None when caching is
    disabled (empty REDIS_URL). Verifies connectivity with PING before returning.
    """
    if not settings.redis_url:
        logger.info("Redis URL not configured - session cache disabled")
        return None
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await client.ping()
    logger.info("Redis connection pool established at %s", settings.redis_url)
    return client


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

async def get_cached_session(
    client: Optional[aioredis.Redis], session_id: str
) -> Optional[Session]:
    """
    Return the cached Session or None on miss, disabled cache or Redis error.

    A payload that no longer validates as a Session is evicted and reported
    as a miss so the caller reads through to the store.
    """
    if client is None:
        return None
    key = make_session_key(session_id)
    try:
        raw = await client.get(key)
    except RedisError as exc:
        logger.warning("Session cache read failed session_id=%s: %s", session_id, exc)
        return None
    if raw is None:
        return None
    try:
        session = Session.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning(
            "Discarding unreadable cached session session_id=%s errors=%d",
            session_id, exc.error_count(),
        )
        try:
            await client.delete(key)
        except RedisError as del_exc:
            logger.warning("Session cache evict failed session_id=%s: %s", session_id, del_exc)
        return None
    logger.debug("Session cache hit session_id=%s", session_id)
    return session


async def set_cached_session(client: Optional[aioredis.Redis], session: Session) -> None:
    """Store a Session with TTL 24h. No-op when the cache is disabled."""
    if client is None:
        return
    try:
        await client.setex(make_session_key(session.session_id), SESSION_TTL, session.model_dump_json())
    except RedisError as exc:
        logger.warning("Session cache write failed session_id=%s: %s", session.session_id, exc)
        return
    logger.info("Session cached session_id=%s ttl=%ds", session.session_id, SESSION_TTL)
