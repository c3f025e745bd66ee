"""
Test configuration for Dot feedback tests.

Shared fixtures:
  - store          fresh InMemoryStore per test
  - collaborator   AsyncMock standing in for the AI provider; generate_text
                   answers by system prompt (see scripted.py)
  - scheduler      FollowUpScheduler with zero delay (tests call drain())
  - processor      TurnProcessor wired to the three above
  - retro          a saved two-question "Sprint Retro" session

No test talks to Mistral, PostgreSQL or Redis.
"""
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from dotfeedback.agents.conversation_agent.scheduler import FollowUpScheduler
from dotfeedback.agents.conversation_agent.turn_processor import TurnProcessor
from dotfeedback.agents.session_agent.schemas import Session
from dotfeedback.agents.session_agent.service import build_session
from dotfeedback.collaborator import AICollaborator
from dotfeedback.store.memory import InMemoryStore
from dotfeedback.tests.scripted import scripted_text


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def collaborator() -> AsyncMock:
    mock = AsyncMock(spec=AICollaborator)
    mock.generate_text.side_effect = scripted_text
    mock.transcribe.return_value = "transcribed words"
    return mock


@pytest_asyncio.fixture
async def scheduler():
    scheduler = FollowUpScheduler(delay_seconds=0)
    yield scheduler
    await scheduler.close()


@pytest.fixture
def processor(store, collaborator, scheduler) -> TurnProcessor:
    return TurnProcessor(store, collaborator, scheduler)


@pytest_asyncio.fixture
async def retro(store) -> Session:
    session = build_session("Sprint Retro", ["What went well?", "What should change?"])
    await store.save_session(session)
    return session
