"""
schemas.py - Idea graph Pydantic v2 data contracts.

Node variants are a discriminated union on `type`:
  idea  → label, category, importance (1–10), details
  theme → label, relevance (1–10), summary
  user  → label (participant display name), contribution (1–10)

Edge endpoints are serialized as `from` / `to` (the browser graph renderer
reads those names). The Python attribute is `source` because `from` is a
keyword.

Structural invariants (unique node ids, resolvable edge endpoints) are not
expressible per-field; synthesizer.validate_graph() enforces them after
parsing.
"""
from typing import Annotated, List, Literal, Union

from pydantic import Field

from dotfeedback.agents.session_agent.schemas import CamelModel

Score = Annotated[float, Field(ge=1, le=10)]


class IdeaNode(CamelModel):
    type: Literal["idea"] = "idea"
    id: str = Field(..., min_length=1)
    label: str
    category: str
    importance: Score
    details: str


class ThemeNode(CamelModel):
    type: Literal["theme"] = "theme"
    id: str = Field(..., min_length=1)
    label: str
    relevance: Score
    summary: str


class UserNode(CamelModel):
    type: Literal["user"] = "user"
    id: str = Field(..., min_length=1)
    label: str
    contribution: Score


GraphNode = Annotated[Union[IdeaNode, ThemeNode, UserNode], Field(discriminator="type")]


class GraphEdge(CamelModel):
    id: str = Field(..., min_length=1)
    source: str = Field(..., alias="from")
    target: str = Field(..., alias="to")
    relation: str
    strength: Score


class GraphSummary(CamelModel):
    main_themes: List[str] = Field(default_factory=list)
    key_insights: List[str] = Field(default_factory=list)
    potential_actions: List[str] = Field(default_factory=list)


class IdeaGraph(CamelModel):
    nodes: List[GraphNode]
    edges: List[GraphEdge] = Field(default_factory=list)
    summary: GraphSummary


class GenerateGraphRequest(CamelModel):
    session_id: str = Field(..., min_length=1)


__all__ = [
    "IdeaNode",
    "ThemeNode",
    "UserNode",
    "GraphNode",
    "GraphEdge",
    "GraphSummary",
    "IdeaGraph",
    "GenerateGraphRequest",
]
