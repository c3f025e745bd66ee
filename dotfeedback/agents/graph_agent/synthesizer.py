"""
synthesizer.py - Session corpus → typed idea graph.

The extraction itself is delegated to the AI collaborator. This module owns:
  - corpus assembly (structured answers + participants' own chat lines)
  - the IdeaGraph contract and its structural validation
  - error surfacing (NotFoundError, AICollaboratorError, GraphValidationError)

Read-only: generating a graph never writes to the store.
"""
from __future__ import annotations

import logging
from typing import Dict, List

from dotfeedback.agents.conversation_agent.schemas import ChatMessage, Sender, StructuredResponse
from dotfeedback.agents.graph_agent.prompts import GRAPH_SYSTEM_PROMPT, graph_request
from dotfeedback.agents.graph_agent.schemas import IdeaGraph
from dotfeedback.collaborator import AICollaborator
from dotfeedback.exceptions import GraphValidationError, NotFoundError
from dotfeedback.store.base import DataStore

logger = logging.getLogger(__name__)


def build_corpus(responses: List[StructuredResponse], chat_messages: List[ChatMessage]) -> str:
    """Format the evidence corpus. Only participant-authored chat lines are included."""
    responses_text = "\n\n".join(
        f'User {r.user_name}: Question: "{r.question_text}" Response: "{r.response}"'
        for r in responses
    )
    chat_text = "\n\n".join(
        f'User {m.user_name or m.user_id}: "{m.message}"'
        for m in chat_messages
        if m.sender is Sender.user
    )
    return f"STRUCTURED RESPONSES:\n{responses_text}\n\nCHAT MESSAGES:\n{chat_text}"


def validate_graph(graph: IdeaGraph) -> IdeaGraph:
    """Reject graphs with duplicate node ids or edges pointing at unknown nodes."""
    problems: List[Dict[str, str]] = []

    seen: Dict[str, int] = {}
    for node in graph.nodes:
        seen[node.id] = seen.get(node.id, 0) + 1
    for node_id, count in seen.items():
        if count > 1:
            problems.append({"field": "nodes", "issue": f"Duplicate node id '{node_id}' ({count} nodes)"})

    for edge in graph.edges:
        for end, node_id in (("from", edge.source), ("to", edge.target)):
            if node_id not in seen:
                problems.append({"field": f"edges.{edge.id}.{end}", "issue": f"Unknown node id '{node_id}'"})

    if problems:
        raise GraphValidationError("Generated graph violates the idea graph contract", details=problems)
    return graph


class GraphSynthesizer:
    def __init__(self, store: DataStore, collaborator: AICollaborator) -> None:
        self.store = store
        self.collaborator = collaborator

    async def collect_corpus(self, session_id: str) -> str:
        responses = await self.store.get_responses(session_id)
        if not responses:
            raise NotFoundError("No responses found for this session")

        # Distinct responding participants, in first-answer order
        user_ids = list(dict.fromkeys(r.user_id for r in responses))
        chat_messages: List[ChatMessage] = []
        for user_id in user_ids:
            chat_messages.extend(await self.store.get_chat_messages(session_id, user_id))

        logger.info(
            "Graph corpus session_id=%s responses=%d participants=%d chat_messages=%d",
            session_id, len(responses), len(user_ids), len(chat_messages),
        )
        return build_corpus(responses, chat_messages)

    async def generate_graph(self, session_id: str) -> IdeaGraph:
        corpus = await self.collect_corpus(session_id)
        graph = await self.collaborator.parse_structured(
            GRAPH_SYSTEM_PROMPT,
            [{"role": "user", "content": graph_request(session_id, corpus)}],
            IdeaGraph,
        )
        validate_graph(graph)
        logger.info(
            "Graph generated session_id=%s nodes=%d edges=%d",
            session_id, len(graph.nodes), len(graph.edges),
        )
        return graph
