"""
Conversation state transitions.

The pure next_state() table is tested directly; ConversationStateMachine is
tested against InMemoryStore for creation, persistence and out-of-range
close-out.
"""
import pytest

from dotfeedback.agents.conversation_agent.schemas import ConversationState, DecisionOutcome
from dotfeedback.agents.conversation_agent.state_machine import (
    ConversationStateMachine,
    TransitionKind,
    initial_state,
    next_state,
)


def _state(index: int = 0, question_mode: bool = True, completed=None) -> ConversationState:
    return ConversationState(
        session_id="ABC123",
        user_id="u1",
        current_question_index=index,
        question_mode=question_mode,
        completed_question_ids=completed or [],
    )


# ---------------------------------------------------------------------------
# next_state
# ---------------------------------------------------------------------------

def test_continue_stays_on_question() -> None:
    t = next_state(_state(1), DecisionOutcome.continue_, 3, "q1")
    assert t.kind is TransitionKind.stay
    assert t.current_question_index == 1
    assert t.question_mode is True
    assert t.completed_question_ids == []
    assert not t.changed


def test_advance_moves_to_next_question_and_marks_completed() -> None:
    t = next_state(_state(0), DecisionOutcome.advance, 3, "q0")
    assert t.kind is TransitionKind.next_question
    assert t.current_question_index == 1
    assert t.question_mode is True
    assert t.completed_question_ids == ["q0"]


def test_advance_past_last_question_finishes() -> None:
    t = next_state(_state(2, completed=["q0", "q1"]), DecisionOutcome.advance, 3, "q2")
    assert t.kind is TransitionKind.finished
    assert t.question_mode is False
    assert t.current_question_index == 2
    assert t.completed_question_ids == ["q0", "q1", "q2"]


def test_finish_leaves_question_mode_early() -> None:
    t = next_state(_state(0), DecisionOutcome.finish, 3, "q0")
    assert t.kind is TransitionKind.finished
    assert t.question_mode is False
    assert t.completed_question_ids == ["q0"]


@pytest.mark.parametrize("outcome", list(DecisionOutcome))
def test_chatting_is_terminal(outcome: DecisionOutcome) -> None:
    t = next_state(_state(1, question_mode=False, completed=["q0"]), outcome, 3, None)
    assert t.kind is TransitionKind.stay
    assert t.question_mode is False
    assert t.current_question_index == 1


def test_completed_ids_have_set_semantics() -> None:
    t = next_state(_state(0, completed=["q0"]), DecisionOutcome.advance, 3, "q0")
    assert t.completed_question_ids == ["q0"]


def test_duplicate_completed_ids_collapse_on_model() -> None:
    state = _state(completed=["q0", "q0", "q1"])
    assert state.completed_question_ids == ["q0", "q1"]


def test_initial_state_without_questions_is_chatting() -> None:
    assert initial_state("S", "u", question_count=0).question_mode is False
    assert initial_state("S", "u", question_count=2).question_mode is True
    assert initial_state("S", "u").question_mode is True


# ---------------------------------------------------------------------------
# ConversationStateMachine
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_creates_and_persists_initial_state(store) -> None:
    machine = ConversationStateMachine(store)
    state = await machine.get("S1", "u1", question_count=2)

    assert state.current_question_index == 0
    assert state.question_mode is True
    assert await store.get_conversation_state("S1", "u1") == state


@pytest.mark.asyncio
async def test_get_closes_out_of_range_state(store) -> None:
    await store.save_conversation_state(
        ConversationState(session_id="S1", user_id="u1", current_question_index=5, question_mode=True)
    )
    machine = ConversationStateMachine(store)

    state = await machine.get("S1", "u1", question_count=2)

    assert state.question_mode is False
    assert (await store.get_conversation_state("S1", "u1")).question_mode is False


@pytest.mark.asyncio
async def test_update_merges_and_refreshes_timestamp(store) -> None:
    machine = ConversationStateMachine(store)
    before = await machine.get("S1", "u1")

    after = await machine.update("S1", "u1", current_question_index=1)

    assert after.current_question_index == 1
    assert after.question_mode is True
    assert after.last_updated >= before.last_updated


@pytest.mark.asyncio
async def test_apply_persists_only_on_change(store, retro) -> None:
    machine = ConversationStateMachine(store)
    state = await machine.get(retro.session_id, "u1", question_count=2)

    same, transition = await machine.apply(retro, state, DecisionOutcome.continue_)
    assert transition.kind is TransitionKind.stay
    assert same is state
    assert (await store.get_conversation_state(retro.session_id, "u1")).last_updated == state.last_updated

    moved, transition = await machine.apply(retro, state, DecisionOutcome.advance)
    assert transition.kind is TransitionKind.next_question
    assert moved.current_question_index == 1
    assert moved.completed_question_ids == [retro.questions[0].id]
    assert await store.get_conversation_state(retro.session_id, "u1") == moved
