"""
routes.py - Participant conversation endpoints.

POST /api/sessions/{session_id}/initialize       - welcome + first question, or rejoin
POST /api/responses                              - answer to the active structured question
POST /api/chat                                   - any participant message (question or chat mode)
GET  /api/chat/{session_id}/{user_id}            - retained transcript, oldest first
GET  /api/conversation-state/{session_id}/{user_id}
POST /api/transcribe                             - recorded audio → text

Follow-up assistant messages (next question, completion) are written after a
short delay and are NOT part of the POST responses; clients poll the
transcript endpoint to pick them up.
"""
import logging
from typing import List

import magic
from fastapi import APIRouter, Depends, File, UploadFile

from dotfeedback.agents.conversation_agent.schemas import (
    ChatMessage,
    ChatRequest,
    ConversationState,
    InitializeRequest,
    InitializeResponse,
    StructuredAnswerRequest,
    TranscriptionResponse,
    TurnResponse,
)
from dotfeedback.agents.conversation_agent.state_machine import ConversationStateMachine
from dotfeedback.agents.conversation_agent.turn_processor import TurnProcessor
from dotfeedback.collaborator import AICollaborator
from dotfeedback.config import settings
from dotfeedback.dependencies import (
    get_collaborator,
    get_state_machine,
    get_store,
    get_turn_processor,
)
from dotfeedback.exceptions import AppException, NotFoundError, ValidationFailure
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Conversation"])

# MediaRecorder output is usually sniffed as video/webm even for audio-only blobs
ALLOWED_AUDIO_MIMES = {"video/webm", "video/mp4", "application/ogg"}


class UploadTooLarge(AppException):
    code = "FILE_TOO_LARGE"
    status_code = 413


class UnsupportedMediaType(AppException):
    code = "INVALID_MIME_TYPE"
    status_code = 415


@router.post("/sessions/{session_id}/initialize", response_model=InitializeResponse)
async def initialize_participant(
    session_id: str,
    body: InitializeRequest,
    processor: TurnProcessor = Depends(get_turn_processor),
) -> InitializeResponse:
    """
    Join a session. Idempotent: a participant with existing history gets that
    history back (existing=true) and no new welcome message is written.
    """
    result = await processor.initialize_session(session_id, body.user_id, body.user_name)
    return InitializeResponse(
        existing=result.is_existing,
        messages=result.messages,
        conversation_state=result.conversation_state,
    )


@router.post("/responses", status_code=201, response_model=TurnResponse)
async def submit_structured_answer(
    body: StructuredAnswerRequest,
    processor: TurnProcessor = Depends(get_turn_processor),
) -> TurnResponse:
    """
    Answer the active question. The question is taken from the participant's
    conversation state; questionId in the body is advisory only.
    """
    result = await processor.process_turn(
        body.session_id, body.user_id, body.user_name, body.response,
        source_question_id=body.question_id,
    )
    return TurnResponse(message=result.assistant_message, conversation_state=result.conversation_state)


@router.post("/chat", status_code=201, response_model=TurnResponse)
async def send_chat_message(
    body: ChatRequest,
    processor: TurnProcessor = Depends(get_turn_processor),
) -> TurnResponse:
    result = await processor.process_turn(body.session_id, body.user_id, body.user_name, body.message)
    return TurnResponse(message=result.assistant_message, conversation_state=result.conversation_state)


@router.get("/chat/{session_id}/{user_id}", response_model=List[ChatMessage])
async def chat_history(
    session_id: str,
    user_id: str,
    store: DataStore = Depends(get_store),
) -> List[ChatMessage]:
    messages = await store.get_chat_messages(session_id, user_id)
    logger.info("Chat history request session_id=%s user_id=%s messages=%d", session_id, user_id, len(messages))
    return messages


@router.get("/conversation-state/{session_id}/{user_id}", response_model=ConversationState)
async def conversation_state(
    session_id: str,
    user_id: str,
    store: DataStore = Depends(get_store),
    states: ConversationStateMachine = Depends(get_state_machine),
) -> ConversationState:
    session = await store.get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    return await states.get(session_id, user_id, question_count=len(session.questions))


@router.post("/transcribe", response_model=TranscriptionResponse)
async def transcribe_audio(
    audio: UploadFile = File(...),
    collaborator: AICollaborator = Depends(get_collaborator),
) -> TranscriptionResponse:
    """
    Transcribe a recorded answer.

    Returns:
        200: {text}
        422: VALIDATION_ERROR when the upload is missing or empty
        413: FILE_TOO_LARGE
        415: INVALID_MIME_TYPE (sniffed from content bytes, not the client header)
        502: AI_PROVIDER_ERROR
    """
    try:
        # Read all bytes first, validate before anything leaves the process
        contents = await audio.read()
        if not contents:
            raise ValidationFailure("No audio file uploaded")
        if len(contents) > settings.max_audio_upload_bytes:
            raise UploadTooLarge(
                f"Audio exceeds maximum allowed {settings.max_audio_upload_bytes // (1024 * 1024)} MB"
            )

        detected_mime = magic.from_buffer(contents[:2048], mime=True)
        if not (detected_mime.startswith("audio/") or detected_mime in ALLOWED_AUDIO_MIMES):
            raise UnsupportedMediaType(f"Unsupported file type '{detected_mime}'. Upload a recorded audio clip.")

        text = await collaborator.transcribe(contents, audio.filename or "recording.webm")
    finally:
        # Releases the spooled upload (on-disk temp file for large clips)
        await audio.close()

    logger.info("Transcribed audio bytes=%d mime=%s", len(contents), detected_mime)
    return TranscriptionResponse(text=text)
