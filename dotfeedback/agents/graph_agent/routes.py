"""
routes.py - Idea graph endpoint.

POST /api/generate-graph - build the idea graph for a session from every
structured answer and participant chat line. Runs out-of-band from live
conversation turns and writes nothing.
"""
import logging

from fastapi import APIRouter, Depends

from dotfeedback.agents.graph_agent.schemas import GenerateGraphRequest, IdeaGraph
from dotfeedback.agents.graph_agent.synthesizer import GraphSynthesizer
from dotfeedback.dependencies import get_graph_synthesizer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Idea Graph"])


@router.post("/generate-graph", response_model=IdeaGraph)
async def generate_graph(
    body: GenerateGraphRequest,
    synthesizer: GraphSynthesizer = Depends(get_graph_synthesizer),
) -> IdeaGraph:
    """
    Returns:
        200: IdeaGraph {nodes, edges, summary}
        404: NOT_FOUND when the session has no structured responses
        502: AI_PROVIDER_ERROR / INVALID_GRAPH with diagnostic details
    """
    return await synthesizer.generate_graph(body.session_id)
