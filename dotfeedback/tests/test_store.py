"""
DataStore contract tests - run against both backends.

  memory    InMemoryStore
  document  DocumentStore over SQLite (sqlite+aiosqlite, one file per test)

The document backend uses the same ORM models and queries as PostgreSQL;
only the JSON column variant differs.
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from dotfeedback.agents.conversation_agent.schemas import (
    ChatMessage,
    ConversationState,
    Sender,
    StructuredResponse,
)
from dotfeedback.agents.session_agent.schemas import Question, Session
from dotfeedback.database import create_engine, create_session_factory, init_models
from dotfeedback.store.document import DocumentStore
from dotfeedback.store.memory import InMemoryStore

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(params=["memory", "document"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryStore(retention_limit=100)
        return

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'dot.db'}")
    await init_models(engine)
    store = DocumentStore(create_session_factory(engine), retention_limit=100, engine=engine)
    yield store
    await store.close()


def _session(session_id: str, minutes: int = 0) -> Session:
    return Session(
        session_id=session_id,
        name=f"Session {session_id}",
        questions=[
            Question(id=f"{session_id}-q0", text="What went well?", order=0),
            Question(id=f"{session_id}-q1", text="What should change?", order=1),
        ],
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


def _message(i: int, session_id: str = "S1", user_id: str = "u1") -> ChatMessage:
    return ChatMessage(
        session_id=session_id,
        user_id=user_id,
        user_name="Priya",
        sender=Sender.user if i % 2 == 0 else Sender.assistant,
        message=f"message {i}",
        timestamp=BASE_TIME + timedelta(seconds=i),
    )


def _response(i: int, user_id: str = "u1") -> StructuredResponse:
    return StructuredResponse(
        session_id="S1",
        user_id=user_id,
        user_name="Priya",
        question_id="S1-q0",
        question_text="What went well?",
        response=f"answer {i}",
        timestamp=BASE_TIME + timedelta(seconds=i),
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_session_round_trip(any_store) -> None:
    session = _session("ABC123")
    await any_store.save_session(session)

    loaded = await any_store.get_session("ABC123")

    assert loaded == session
    assert [q.order for q in loaded.questions] == [0, 1]
    assert loaded.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_missing_session_is_none(any_store) -> None:
    assert await any_store.get_session("NOPE00") is None


@pytest.mark.asyncio
async def test_list_sessions_newest_first(any_store) -> None:
    await any_store.save_session(_session("OLD000", minutes=0))
    await any_store.save_session(_session("NEW000", minutes=10))
    await any_store.save_session(_session("MID000", minutes=5))

    listed = await any_store.list_sessions()

    assert [s.session_id for s in listed] == ["NEW000", "MID000", "OLD000"]


# ---------------------------------------------------------------------------
# Chat retention
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_chat_history_capped_at_retention_limit(any_store) -> None:
    for i in range(101):
        await any_store.save_chat_message(_message(i))

    history = await any_store.get_chat_messages("S1", "u1")

    assert len(history) == 100
    assert history[0].message == "message 1"
    assert history[-1].message == "message 100"
    assert [m.timestamp for m in history] == sorted(m.timestamp for m in history)


@pytest.mark.asyncio
async def test_chat_history_is_scoped_per_participant(any_store) -> None:
    await any_store.save_chat_message(_message(0, user_id="u1"))
    await any_store.save_chat_message(_message(1, user_id="u2"))
    await any_store.save_chat_message(_message(2, session_id="S2", user_id="u1"))

    history = await any_store.get_chat_messages("S1", "u1")

    assert [m.message for m in history] == ["message 0"]
    assert history[0].sender is Sender.user


@pytest.mark.asyncio
async def test_responses_are_never_evicted(any_store) -> None:
    for i in range(3):
        await any_store.save_response(_response(i))
    for i in range(120):
        await any_store.save_chat_message(_message(i))

    responses = await any_store.get_responses("S1")

    assert [r.response for r in responses] == ["answer 0", "answer 1", "answer 2"]


@pytest.mark.asyncio
async def test_get_responses_filters_by_user(any_store) -> None:
    await any_store.save_response(_response(0, user_id="u1"))
    await any_store.save_response(_response(1, user_id="u2"))

    assert [r.user_id for r in await any_store.get_responses("S1", "u2")] == ["u2"]
    assert len(await any_store.get_responses("S1")) == 2
    assert await any_store.get_responses("S9") == []


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_conversation_state_upsert(any_store) -> None:
    assert await any_store.get_conversation_state("S1", "u1") is None

    first = ConversationState(session_id="S1", user_id="u1", last_updated=BASE_TIME)
    await any_store.save_conversation_state(first)
    second = ConversationState(
        session_id="S1",
        user_id="u1",
        current_question_index=1,
        completed_question_ids=["S1-q0"],
        last_updated=BASE_TIME + timedelta(seconds=5),
    )
    await any_store.save_conversation_state(second)

    loaded = await any_store.get_conversation_state("S1", "u1")
    assert loaded == second


# ---------------------------------------------------------------------------
# Backend specifics
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_memory_store_returns_copies() -> None:
    store = InMemoryStore()
    await store.save_conversation_state(ConversationState(session_id="S1", user_id="u1"))

    loaded = await store.get_conversation_state("S1", "u1")
    loaded.completed_question_ids.append("S1-q0")

    assert (await store.get_conversation_state("S1", "u1")).completed_question_ids == []


def test_retention_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        InMemoryStore(retention_limit=0)
