"""
routes.py - Session HTTP endpoints (admin surface).

POST /api/sessions               - create a session from a name + ordered questions
GET  /api/sessions               - list sessions, newest first
GET  /api/sessions/{session_id}  - fetch one session (404 if absent)

No authentication (the admin role is a client-side flag only).
"""
import logging
from typing import List, Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends

from dotfeedback.agents.session_agent.schemas import CreateSessionRequest, Session
from dotfeedback.agents.session_agent.service import create_session, fetch_session
from dotfeedback.dependencies import get_redis, get_store
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Sessions"])


@router.post("/sessions", status_code=201, response_model=Session)
async def create_session_endpoint(
    body: CreateSessionRequest,
    store: DataStore = Depends(get_store),
    redis: Optional[aioredis.Redis] = Depends(get_redis),
) -> Session:
    """
    Create a session. The returned sessionId is the short code participants
    join with.

    Returns:
        201: Session
        422: VALIDATION_ERROR if the name is blank or no question text remains
    """
    return await create_session(store, redis, body.name, body.questions)


@router.get("/sessions", response_model=List[Session])
async def list_sessions_endpoint(store: DataStore = Depends(get_store)) -> List[Session]:
    sessions = await store.list_sessions()
    logger.info("Listed sessions count=%d", len(sessions))
    return sessions


@router.get("/sessions/{session_id}", response_model=Session)
async def get_session_endpoint(
    session_id: str,
    store: DataStore = Depends(get_store),
    redis: Optional[aioredis.Redis] = Depends(get_redis),
) -> Session:
    return await fetch_session(store, redis, session_id)
