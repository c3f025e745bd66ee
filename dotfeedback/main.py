"""
main.py - Dot feedback FastAPI application entry point.

Start with: uvicorn dotfeedback.main:app --reload --port 8000
(run from the repository root)
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dotfeedback.agents.conversation_agent.scheduler import FollowUpScheduler
from dotfeedback.agents.conversation_agent.turn_processor import TurnProcessor
from dotfeedback.agents.graph_agent.synthesizer import GraphSynthesizer
from dotfeedback.collaborator import AICollaborator
from dotfeedback.config import settings
from dotfeedback.exceptions import AppException
from dotfeedback.store import DataStore

# ---------------------------------------------------------------------------
# Logging - configured before anything else
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def install_services(
    app: FastAPI,
    *,
    store: DataStore,
    collaborator: AICollaborator,
    redis: Optional[aioredis.Redis] = None,
    followup_delay: Optional[float] = None,
) -> None:
    """
    Wire the shared services onto app.state.

    Called from lifespan in production; tests call it directly because
    httpx ASGITransport does not run lifespan events.
    """
    delay = settings.followup_delay_seconds if followup_delay is None else followup_delay
    scheduler = FollowUpScheduler(delay_seconds=delay)

    app.state.store = store
    app.state.redis = redis
    app.state.collaborator = collaborator
    app.state.scheduler = scheduler
    app.state.turn_processor = TurnProcessor(
        store, collaborator, scheduler, context_limit=settings.chat_context_limit
    )
    app.state.graph_synthesizer = GraphSynthesizer(store, collaborator)


# ---------------------------------------------------------------------------
# Lifespan - startup & shutdown hooks
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      1. Build the configured store (creates tables for the document backend)
      2. Initialize Redis connection pool (skipped when REDIS_URL is empty)
      3. Mistral client + semaphore → MistralCollaborator
      4. Scheduler, turn processor, graph synthesizer
    Shutdown:
      1. Cancel pending follow-ups
      2. Close Redis pool and the store
    """
    from mistralai import Mistral

    from dotfeedback.cache import create_redis_pool
    from dotfeedback.collaborator import MistralCollaborator
    from dotfeedback.store import build_store

    # --- 1. Storage ---
    store = await build_store(
        settings.storage_backend, settings.database_url, settings.chat_retention_limit
    )
    logger.info("Store ready (backend=%s)", store.backend_name)

    # --- 2. Redis ---
    redis = await create_redis_pool()

    # --- 3. Mistral client - singleton for HTTP connection pool reuse ---
    if not settings.mistral_api_key:
        logger.warning("MISTRAL_API_KEY is not set - AI calls will fail and fallbacks will be used")
    client = Mistral(api_key=settings.mistral_api_key)
    # asyncio.Semaphore MUST be created inside async context (not module level)
    semaphore = asyncio.Semaphore(settings.ai_concurrency)
    collaborator = MistralCollaborator(
        client,
        semaphore,
        model=settings.mistral_model,
        transcription_model=settings.transcription_model,
        timeout=settings.ai_timeout_seconds,
    )
    logger.info(
        "Mistral collaborator initialized (model=%s, concurrency=%d)",
        settings.mistral_model, settings.ai_concurrency,
    )

    # --- 4. Conversation services ---
    install_services(app, store=store, collaborator=collaborator, redis=redis)

    logger.info("Dot feedback v%s starting up", settings.app_version)
    yield

    # --- Shutdown ---
    dropped = await app.state.scheduler.close()
    if dropped:
        logger.info("Dropped %d pending follow-up message(s)", dropped)
    if redis is not None:
        await redis.aclose()
        logger.info("Redis connection pool closed")
    await store.close()
    logger.info("Dot feedback shutting down")


# ---------------------------------------------------------------------------
# FastAPI application instance
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Dot Feedback API",
    version=settings.app_version,
    description=(
        "Conversational feedback sessions: participants answer an admin's questions "
        "through Dot, an AI facilitator, and admins turn the answers into an idea graph."
    ),
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error response helper
# ---------------------------------------------------------------------------
def _make_error_response(
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Build a standard {error: {code, message, details}} response."""
    body = {
        "error": {
            "code": code,
            "message": message,
            "details": details or [],
        }
    }
    return JSONResponse(status_code=status_code, content=body)


# ---------------------------------------------------------------------------
# Global exception handlers - registered BEFORE routers
# ---------------------------------------------------------------------------
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _make_error_response(
        code=exc.code,
        message=exc.message,
        details=exc.details,
        status_code=exc.status_code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Converts Pydantic / FastAPI 422 validation errors to standard format.
    Returns ALL field violations in one response.
    """
    details = []
    for error in exc.errors():
        # Dot-notation field path, excluding the top-level 'body' loc
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        details.append({"field": field or None, "issue": error["msg"]})
    return _make_error_response(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details=details,
        status_code=422,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code_map = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        413: "FILE_TOO_LARGE",
        415: "INVALID_MIME_TYPE",
        422: "VALIDATION_ERROR",
    }
    code = code_map.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _make_error_response(
        code=code,
        message=str(exc.detail),
        status_code=exc.status_code,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Catch-all for unexpected errors.
    DEBUG=true  → includes exception type & message in details (dev only).
    DEBUG=false → generic message; full traceback logged server-side only.
    """
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=True,
    )
    if settings.debug:
        details = [{"issue": f"{type(exc).__name__}: {exc}"}]
        message = "An unexpected error occurred (debug details included)"
    else:
        details = []
        message = "An unexpected error occurred"
    return _make_error_response(
        code="INTERNAL_ERROR",
        message=message,
        details=details,
        status_code=500,
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------
@app.get("/api/health", tags=["System"])
async def health_check(request: Request) -> dict:
    store = getattr(request.app.state, "store", None)
    return {
        "status": "ok",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "storage": store.backend_name if store is not None else None,
    }


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from dotfeedback.agents.session_agent.routes import router as session_router  # noqa: E402
from dotfeedback.agents.conversation_agent.routes import router as conversation_router  # noqa: E402
from dotfeedback.agents.graph_agent.routes import router as graph_router  # noqa: E402

app.include_router(session_router)
app.include_router(conversation_router)
app.include_router(graph_router)
