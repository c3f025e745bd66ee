"""
Session cache helpers and the read-through session lookup.

Redis is replaced by an AsyncMock; a disabled cache is simply None.
"""
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from dotfeedback.agents.session_agent.service import (
    SESSION_CODE_ALPHABET,
    build_session,
    create_session,
    fetch_session,
)
from dotfeedback.cache import (
    SESSION_TTL,
    get_cached_session,
    make_session_key,
    set_cached_session,
)
from dotfeedback.exceptions import NotFoundError, ValidationFailure


def test_session_key_format() -> None:
    assert make_session_key("ABC123") == "session:ABC123"


@pytest.mark.asyncio
async def test_disabled_cache_is_a_no_op() -> None:
    session = build_session("Sprint Retro", ["What went well?"])
    await set_cached_session(None, session)
    assert await get_cached_session(None, session.session_id) is None


@pytest.mark.asyncio
async def test_set_and_get_round_trip() -> None:
    session = build_session("Sprint Retro", ["What went well?"])
    redis = AsyncMock()

    await set_cached_session(redis, session)
    key, ttl, payload = redis.setex.await_args.args
    assert key == f"session:{session.session_id}"
    assert ttl == SESSION_TTL

    redis.get.return_value = payload
    assert await get_cached_session(redis, session.session_id) == session


@pytest.mark.asyncio
async def test_redis_errors_are_treated_as_misses() -> None:
    redis = AsyncMock()
    redis.get.side_effect = RedisConnectionError("refused")
    redis.setex.side_effect = RedisConnectionError("refused")
    session = build_session("Sprint Retro", ["What went well?"])

    await set_cached_session(redis, session)
    assert await get_cached_session(redis, session.session_id) is None


@pytest.mark.asyncio
async def test_unreadable_cached_payload_is_evicted() -> None:
    redis = AsyncMock()
    redis.get.return_value = '{"sessionId": "X"}'

    assert await get_cached_session(redis, "X") is None
    redis.delete.assert_awaited_once_with("session:X")


@pytest.mark.asyncio
async def test_unreadable_payload_survives_failed_eviction() -> None:
    redis = AsyncMock()
    redis.get.return_value = "not json at all"
    redis.delete.side_effect = RedisConnectionError("refused")

    assert await get_cached_session(redis, "X") is None


# ---------------------------------------------------------------------------
# Session service
# ---------------------------------------------------------------------------

def test_build_session_orders_questions() -> None:
    session = build_session("  Sprint Retro ", ["What went well?", "  ", "What should change?"])

    assert session.name == "Sprint Retro"
    assert len(session.session_id) == 6
    assert set(session.session_id) <= set(SESSION_CODE_ALPHABET)
    assert [(q.order, q.text) for q in session.questions] == [
        (0, "What went well?"),
        (1, "What should change?"),
    ]
    assert session.questions[1].id == f"{session.session_id}-q1"


def test_build_session_requires_name_and_questions() -> None:
    with pytest.raises(ValidationFailure) as exc_info:
        build_session(" ", ["", "   "])
    assert {d["field"] for d in exc_info.value.details} == {"name", "questions"}


@pytest.mark.asyncio
async def test_fetch_session_reads_through_to_store(store) -> None:
    redis = AsyncMock()
    redis.get.return_value = None
    session = await create_session(store, None, "Sprint Retro", ["What went well?"])

    fetched = await fetch_session(store, redis, session.session_id)

    assert fetched == session
    redis.setex.assert_awaited_once()


@pytest.mark.asyncio
async def test_fetch_session_prefers_cache(store) -> None:
    session = build_session("Cached Only", ["Q?"])
    redis = AsyncMock()
    redis.get.return_value = session.model_dump_json()

    assert await fetch_session(store, redis, session.session_id) == session


@pytest.mark.asyncio
async def test_fetch_session_ignores_unreadable_cache_entry(store) -> None:
    session = await create_session(store, None, "Sprint Retro", ["What went well?"])
    redis = AsyncMock()
    redis.get.return_value = f'{{"sessionId": "{session.session_id}"}}'

    assert await fetch_session(store, redis, session.session_id) == session
    redis.delete.assert_awaited_once_with(f"session:{session.session_id}")
    redis.setex.assert_awaited_once()


@pytest.mark.asyncio
async def test_fetch_missing_session(store) -> None:
    with pytest.raises(NotFoundError):
        await fetch_session(store, None, "NOPE00")
