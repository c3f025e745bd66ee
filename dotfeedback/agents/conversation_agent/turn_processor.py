"""
turn_processor.py - One participant utterance in, every side effect out.

Question-mode turn:
  1. Persist the utterance as a StructuredResponse AND a user ChatMessage
  2. Build the decision input (history, current question, names, position)
  3. Classify via the AI collaborator (fallback: continue + apology)
  4. Persist the assistant reply - returned synchronously
  5. Apply the state transition
  6. advance → schedule the rephrased next question
  7. finish  → schedule the completion message

Chat-mode turn: persist the user message, send persona + the last N messages
to the text model (fallback reply on failure), persist and return the reply.

AI failures never fail a conversational turn. Storage failures propagate.

Turns for the same (session_id, user_id) are serialised with a keyed
asyncio.Lock so a duplicate submit cannot read a stale state snapshot.
The lock is process-local and dropped once no turn holds or awaits it.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Tuple

from dotfeedback.agents.conversation_agent import prompts
from dotfeedback.agents.conversation_agent.scheduler import (
    FollowUpKind,
    FollowUpScheduler,
    ScheduledMessage,
)
from dotfeedback.agents.conversation_agent.schemas import (
    ChatMessage,
    ConversationState,
    Decision,
    DecisionOutcome,
    Sender,
    StructuredResponse,
)
from dotfeedback.agents.conversation_agent.state_machine import (
    ConversationStateMachine,
    TransitionKind,
)
from dotfeedback.agents.session_agent.schemas import Session
from dotfeedback.collaborator import AICollaborator, Message
from dotfeedback.exceptions import AICollaboratorError, NotFoundError
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LIMIT = 100


@dataclass
class TurnResult:
    assistant_message: str
    conversation_state: ConversationState


@dataclass
class InitResult:
    is_existing: bool
    messages: List[ChatMessage]
    conversation_state: ConversationState


def to_model_messages(history: List[ChatMessage]) -> List[Message]:
    return [
        {"role": "user" if m.sender is Sender.user else "assistant", "content": m.message}
        for m in history
    ]


def fallback_decision() -> Decision:
    return Decision(
        decision=DecisionOutcome.continue_,
        reasoning=prompts.FALLBACK_DECISION_REASONING,
        response=prompts.FALLBACK_DECISION_REPLY,
        question_complete=False,
    )


class TurnProcessor:
    def __init__(
        self,
        store: DataStore,
        collaborator: AICollaborator,
        scheduler: FollowUpScheduler,
        state_machine: Optional[ConversationStateMachine] = None,
        context_limit: int = DEFAULT_CONTEXT_LIMIT,
    ) -> None:
        self.store = store
        self.collaborator = collaborator
        self.scheduler = scheduler
        self.states = state_machine or ConversationStateMachine(store)
        self.context_limit = context_limit
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_holders: Dict[Tuple[str, str], int] = {}
        if scheduler.handler is None:
            scheduler.handler = self.deliver_follow_up

    # ---------------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------------

    async def _require_session(self, session_id: str) -> Session:
        session = await self.store.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    @asynccontextmanager
    async def _participant_lock(self, session_id: str, user_id: str) -> AsyncIterator[None]:
        """Serialise turns for one participant; the entry is removed when the last holder leaves."""
        key = (session_id, user_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_holders[key] = self._lock_holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[key] -= 1
            if self._lock_holders[key] == 0:
                del self._lock_holders[key]
                del self._locks[key]

    async def _say(self, session_id: str, user_id: str, text: str) -> ChatMessage:
        return await self.store.save_chat_message(
            ChatMessage(session_id=session_id, user_id=user_id, sender=Sender.assistant, message=text)
        )

    async def _text_or(self, fallback: str, system_prompt: str, messages: List[Message], max_tokens: int) -> str:
        try:
            return await self.collaborator.generate_text(system_prompt, messages, max_tokens)
        except AICollaboratorError as exc:
            logger.warning("Text generation failed, using fallback: %s", exc.message)
            return fallback

    async def rephrase_question(
        self, question_text: str, user_name: str, session_name: str, number: int, total: int
    ) -> str:
        """Conversational version of an admin question; the literal text on failure."""
        return await self._text_or(
            question_text,
            prompts.REPHRASE_SYSTEM_PROMPT,
            [{"role": "user", "content": prompts.rephrase_request(question_text, user_name, session_name, number, total)}],
            prompts.REPHRASE_MAX_TOKENS,
        )

    # ---------------------------------------------------------------------------
    # Session initialization
    # ---------------------------------------------------------------------------

    async def initialize_session(self, session_id: str, user_id: str, user_name: str) -> InitResult:
        """
        First contact for a participant: welcome message, rephrased first
        question, initial state. A participant with any history gets it back
        unchanged (idempotent rejoin).
        """
        session = await self._require_session(session_id)

        async with self._participant_lock(session_id, user_id):
            existing = await self.store.get_chat_messages(session_id, user_id)
            if existing:
                state = await self.states.get(session_id, user_id, question_count=len(session.questions))
                logger.info("Participant rejoined session_id=%s user_id=%s messages=%d", session_id, user_id, len(existing))
                return InitResult(is_existing=True, messages=existing, conversation_state=state)

            welcome = await self._text_or(
                prompts.fallback_welcome(user_name),
                prompts.WELCOME_SYSTEM_PROMPT,
                [{"role": "user", "content": prompts.welcome_request(user_name, session.name)}],
                prompts.WELCOME_MAX_TOKENS,
            )
            await self._say(session_id, user_id, welcome)

            if session.questions:
                first = session.question_at(0)
                rephrased = await self.rephrase_question(
                    first.text, user_name, session.name, 1, len(session.questions)
                )
                await self._say(session_id, user_id, rephrased)
                state = await self.states.update(
                    session_id, user_id,
                    current_question_index=0, question_mode=True, completed_question_ids=[],
                )
            else:
                state = await self.states.update(session_id, user_id, question_mode=False)

            messages = await self.store.get_chat_messages(session_id, user_id)
            logger.info(
                "Participant initialized session_id=%s user_id=%s question_mode=%s",
                session_id, user_id, state.question_mode,
            )
            return InitResult(is_existing=False, messages=messages, conversation_state=state)

    # ---------------------------------------------------------------------------
    # Turns
    # ---------------------------------------------------------------------------

    async def process_turn(
        self,
        session_id: str,
        user_id: str,
        user_name: str,
        text: str,
        source_question_id: Optional[str] = None,
    ) -> TurnResult:
        """Route one utterance to the question-mode or chat-mode path."""
        session = await self._require_session(session_id)

        async with self._participant_lock(session_id, user_id):
            state = await self.states.get(session_id, user_id, question_count=len(session.questions))
            if state.question_mode:
                return await self._question_turn(session, state, user_name, text, source_question_id)
            return await self._chat_turn(session, state, user_name, text)

    async def _question_turn(
        self,
        session: Session,
        state: ConversationState,
        user_name: str,
        text: str,
        source_question_id: Optional[str],
    ) -> TurnResult:
        session_id, user_id = session.session_id, state.user_id
        index = state.current_question_index
        question = session.question_at(index)
        total = len(session.questions)
        if source_question_id and source_question_id != question.id:
            logger.warning(
                "Answer tagged for question_id=%s but active question_id=%s session_id=%s user_id=%s",
                source_question_id, question.id, session_id, user_id,
            )

        # History before this utterance; the utterance itself is the final user message
        history = await self.store.get_chat_messages(session_id, user_id)

        # 1. Durable answer record + transcript line
        await self.store.save_response(
            StructuredResponse(
                session_id=session_id,
                user_id=user_id,
                user_name=user_name,
                question_id=question.id,
                question_text=question.text,
                response=text,
            )
        )
        await self.store.save_chat_message(
            ChatMessage(session_id=session_id, user_id=user_id, user_name=user_name, sender=Sender.user, message=text)
        )

        # 2–3. Classify
        system_prompt = prompts.decision_system_prompt(session.name, user_name, question.text, index + 1, total)
        messages = [*to_model_messages(history[-self.context_limit:]), {"role": "user", "content": text}]
        try:
            decision = await self.collaborator.parse_structured(system_prompt, messages, Decision)
        except AICollaboratorError as exc:
            logger.warning(
                "Decision classification failed session_id=%s user_id=%s: %s",
                session_id, user_id, exc.message,
            )
            decision = fallback_decision()
        reply = decision.response.strip() or prompts.FALLBACK_DECISION_REPLY
        logger.info(
            "Decision session_id=%s user_id=%s question=%d/%d decision=%s complete=%s",
            session_id, user_id, index + 1, total, decision.decision.value, decision.question_complete,
        )

        # 4. Reply
        await self._say(session_id, user_id, reply)

        # 5. Transition
        updated, transition = await self.states.apply(session, state, decision.decision)

        # 6–7. Follow-ups
        if transition.kind is TransitionKind.next_question:
            next_question = session.question_at(transition.current_question_index)
            self.scheduler.schedule(
                ScheduledMessage(
                    kind=FollowUpKind.next_question,
                    session_id=session_id,
                    user_id=user_id,
                    user_name=user_name,
                    session_name=session.name,
                    not_before=self.scheduler.not_before(),
                    question_text=next_question.text,
                    question_number=transition.current_question_index + 1,
                    question_total=total,
                )
            )
        elif transition.kind is TransitionKind.finished:
            self.scheduler.schedule(
                ScheduledMessage(
                    kind=FollowUpKind.completion,
                    session_id=session_id,
                    user_id=user_id,
                    user_name=user_name,
                    session_name=session.name,
                    not_before=self.scheduler.not_before(),
                )
            )

        return TurnResult(assistant_message=reply, conversation_state=updated)

    async def _chat_turn(
        self,
        session: Session,
        state: ConversationState,
        user_name: str,
        text: str,
    ) -> TurnResult:
        session_id, user_id = session.session_id, state.user_id
        await self.store.save_chat_message(
            ChatMessage(session_id=session_id, user_id=user_id, user_name=user_name, sender=Sender.user, message=text)
        )
        # Retained history already ends with the new message
        history = await self.store.get_chat_messages(session_id, user_id)
        context = to_model_messages(history[-self.context_limit:])

        reply = await self._text_or(
            prompts.FALLBACK_CHAT_REPLY,
            prompts.chat_system_prompt(session.name),
            context,
            prompts.CHAT_MAX_TOKENS,
        )
        await self._say(session_id, user_id, reply)
        logger.info("Chat turn session_id=%s user_id=%s context=%d", session_id, user_id, len(context))
        return TurnResult(assistant_message=reply, conversation_state=state)

    # ---------------------------------------------------------------------------
    # Scheduler handler
    # ---------------------------------------------------------------------------

    async def deliver_follow_up(self, job: ScheduledMessage) -> None:
        """Generate and persist a scheduled assistant message."""
        if job.kind is FollowUpKind.next_question:
            text = await self.rephrase_question(
                job.question_text or "",
                job.user_name,
                job.session_name,
                job.question_number or 1,
                job.question_total or 1,
            )
        else:
            text = await self._text_or(
                prompts.fallback_completion(job.user_name),
                prompts.COMPLETION_SYSTEM_PROMPT,
                [{"role": "user", "content": prompts.completion_request(job.user_name, job.session_name)}],
                prompts.COMPLETION_MAX_TOKENS,
            )
        await self._say(job.session_id, job.user_id, text)
        logger.info("Delivered follow-up kind=%s session_id=%s user_id=%s", job.kind.value, job.session_id, job.user_id)
