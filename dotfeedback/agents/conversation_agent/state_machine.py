"""
state_machine.py - Per-participant conversation state.

States:
  Questioning(i)  question_mode=True,  current_question_index=i
  Chatting        question_mode=False  (terminal)

Transitions (decided by next_state, persisted by ConversationStateMachine.apply):
  Questioning(i) --continue--------------------> Questioning(i)
  Questioning(i) --advance, i+1 < count--------> Questioning(i+1)
  Questioning(i) --advance, i+1 >= count-------> Chatting
  Questioning(i) --finish----------------------> Chatting
  Chatting       --any-------------------------> Chatting

Leaving a question adds its id to completed_question_ids (set semantics).
The index never decreases and Chatting never re-enters question mode.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from dotfeedback.agents.conversation_agent.schemas import ConversationState, DecisionOutcome
from dotfeedback.agents.session_agent.schemas import Session, utcnow
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)


class TransitionKind(str, Enum):
    stay = "stay"                    # still on the same question, or already chatting
    next_question = "next_question"  # moved to a new active question
    finished = "finished"            # left question mode for good


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    current_question_index: int
    question_mode: bool
    completed_question_ids: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.kind is not TransitionKind.stay


def initial_state(session_id: str, user_id: str, question_count: Optional[int] = None) -> ConversationState:
    """Questioning(0), or Chatting when the session is known to have no questions."""
    return ConversationState(
        session_id=session_id,
        user_id=user_id,
        current_question_index=0,
        question_mode=question_count != 0,
        completed_question_ids=[],
    )


def _mark_completed(completed: List[str], question_id: Optional[str]) -> List[str]:
    if question_id and question_id not in completed:
        return [*completed, question_id]
    return list(completed)


def next_state(
    state: ConversationState,
    outcome: DecisionOutcome,
    question_count: int,
    question_id: Optional[str],
) -> Transition:
    """Pure transition function. question_id is the id of the active question."""
    index = state.current_question_index

    if not state.question_mode or outcome is DecisionOutcome.continue_:
        return Transition(
            kind=TransitionKind.stay,
            current_question_index=index,
            question_mode=state.question_mode,
            completed_question_ids=list(state.completed_question_ids),
        )

    completed = _mark_completed(state.completed_question_ids, question_id)

    if outcome is DecisionOutcome.advance and index + 1 < question_count:
        return Transition(
            kind=TransitionKind.next_question,
            current_question_index=index + 1,
            question_mode=True,
            completed_question_ids=completed,
        )

    # finish, or advance past the last question
    return Transition(
        kind=TransitionKind.finished,
        current_question_index=index,
        question_mode=False,
        completed_question_ids=completed,
    )


class ConversationStateMachine:
    """Storage-backed access to ConversationState. The only writer of state."""

    def __init__(self, store: DataStore) -> None:
        self.store = store

    async def get(
        self, session_id: str, user_id: str, *, question_count: Optional[int] = None
    ) -> ConversationState:
        """
        Return the stored state, creating and persisting the initial state if absent.

        When question_count is given, a question-mode state whose index no
        longer points at a question is closed out to Chatting.
        """
        state = await self.store.get_conversation_state(session_id, user_id)
        if state is None:
            state = initial_state(session_id, user_id, question_count)
            await self.store.save_conversation_state(state)
            logger.info(
                "Created conversation state session_id=%s user_id=%s question_mode=%s",
                session_id, user_id, state.question_mode,
            )
            return state

        if (
            question_count is not None
            and state.question_mode
            and state.current_question_index >= question_count
        ):
            logger.warning(
                "Conversation state index out of range session_id=%s user_id=%s index=%d count=%d",
                session_id, user_id, state.current_question_index, question_count,
            )
            return await self.update(session_id, user_id, question_mode=False)
        return state

    async def update(self, session_id: str, user_id: str, **changes: Any) -> ConversationState:
        """Merge changes into the existing (or default) state, refresh last_updated, persist."""
        current = await self.store.get_conversation_state(session_id, user_id)
        if current is None:
            current = initial_state(session_id, user_id)
        merged = ConversationState.model_validate(
            {
                **current.model_dump(),
                **changes,
                "session_id": session_id,
                "user_id": user_id,
                "last_updated": utcnow(),
            }
        )
        return await self.store.save_conversation_state(merged)

    async def apply(
        self,
        session: Session,
        state: ConversationState,
        outcome: DecisionOutcome,
    ) -> Tuple[ConversationState, Transition]:
        """Compute the transition for outcome and persist it when anything changed."""
        question_id = None
        if state.question_mode and state.current_question_index < len(session.questions):
            question_id = session.question_at(state.current_question_index).id

        transition = next_state(state, outcome, len(session.questions), question_id)
        if not transition.changed:
            return state, transition

        updated = await self.update(
            state.session_id,
            state.user_id,
            current_question_index=transition.current_question_index,
            question_mode=transition.question_mode,
            completed_question_ids=transition.completed_question_ids,
        )
        logger.info(
            "Conversation transition session_id=%s user_id=%s outcome=%s kind=%s index=%d",
            state.session_id, state.user_id, outcome.value, transition.kind.value,
            transition.current_question_index,
        )
        return updated, transition
