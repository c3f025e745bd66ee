"""
schemas.py - Conversation Pydantic v2 data contracts.

Defines:
  - Sender              enum (user / assistant)
  - ChatMessage         (one transcript line, retained up to the per-user cap)
  - StructuredResponse  (durable answer record, never evicted)
  - ConversationState   (per-participant question progress)
  - DecisionOutcome     enum (continue / advance / finish)
  - Decision            (structured classifier output for one answer)
  - Request/response bodies for the conversation routes
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from dotfeedback.agents.session_agent.schemas import CamelModel, utcnow


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Sender(str, Enum):
    user = "user"
    assistant = "assistant"


class DecisionOutcome(str, Enum):
    # Values are what the classifier is asked to emit
    continue_ = "continue_conversation"
    advance = "move_to_next_question"
    finish = "finish_questions"


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------

class ChatMessage(CamelModel):
    session_id: str
    user_id: str
    user_name: Optional[str] = None
    sender: Sender
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class StructuredResponse(CamelModel):
    """One answer to one structured question. Append-only."""

    session_id: str
    user_id: str
    user_name: str
    question_id: str
    question_text: str
    response: str
    timestamp: datetime = Field(default_factory=utcnow)


class ConversationState(CamelModel):
    """
    Progress of one participant through one session.

    question_mode=True  → Questioning(current_question_index)
    question_mode=False → Chatting (terminal)

    completed_question_ids has set semantics; it is kept as a de-duplicated
    list so it serializes the same way from every backend.
    """

    session_id: str
    user_id: str
    current_question_index: int = Field(default=0, ge=0)
    question_mode: bool = True
    completed_question_ids: List[str] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utcnow)

    @field_validator("completed_question_ids")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


# ---------------------------------------------------------------------------
# Classifier contract
# ---------------------------------------------------------------------------

class Decision(CamelModel):
    """Structured verdict on a participant's answer to the current question."""

    decision: DecisionOutcome
    reasoning: str = Field(description="Diagnostic only, never shown to the participant")
    response: str = Field(description="Reply to show the participant now")
    question_complete: bool


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class InitializeRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1, max_length=100)


class StructuredAnswerRequest(CamelModel):
    session_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1, max_length=100)
    question_id: Optional[str] = None
    question_text: Optional[str] = None
    response: str = Field(..., min_length=1, max_length=10000)


class ChatRequest(CamelModel):
    session_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=10000)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class InitializeResponse(CamelModel):
    existing: bool
    messages: List[ChatMessage]
    conversation_state: ConversationState


class TurnResponse(CamelModel):
    message: str
    conversation_state: ConversationState


class TranscriptionResponse(CamelModel):
    text: str


__all__ = [
    "Sender",
    "DecisionOutcome",
    "ChatMessage",
    "StructuredResponse",
    "ConversationState",
    "Decision",
    "InitializeRequest",
    "StructuredAnswerRequest",
    "ChatRequest",
    "InitializeResponse",
    "TurnResponse",
    "TranscriptionResponse",
]
