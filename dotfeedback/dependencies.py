"""
dependencies.py - FastAPI dependencies that hand out app.state services.

All services are created once in main.py lifespan (see install_services) and
read from app.state at request time; routes never construct them.
"""
from typing import Optional

import redis.asyncio as aioredis
from fastapi import Request

from dotfeedback.agents.conversation_agent.state_machine import ConversationStateMachine
from dotfeedback.agents.conversation_agent.turn_processor import TurnProcessor
from dotfeedback.agents.graph_agent.synthesizer import GraphSynthesizer
from dotfeedback.collaborator import AICollaborator
from dotfeedback.store.base import DataStore


def get_store(request: Request) -> DataStore:
    return request.app.state.store


def get_redis(request: Request) -> Optional[aioredis.Redis]:
    return getattr(request.app.state, "redis", None)


def get_collaborator(request: Request) -> AICollaborator:
    return request.app.state.collaborator


def get_turn_processor(request: Request) -> TurnProcessor:
    return request.app.state.turn_processor


def get_state_machine(request: Request) -> ConversationStateMachine:
    return request.app.state.turn_processor.states


def get_graph_synthesizer(request: Request) -> GraphSynthesizer:
    return request.app.state.graph_synthesizer
