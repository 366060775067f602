"""
Search Graph Models — Pydantic models for the question decomposition tree.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Dict, Optional
from enum import Enum
from datetime import datetime


ROOT_NODE_ID = "root"

# Resolver outcomes that end a node normally but carry no usable answer
NO_LINKS_ANSWER = "no relevant links found"
INSUFFICIENT_CONTENT_ANSWER = "insufficient relevant content"
SENTINEL_ANSWERS = {NO_LINKS_ANSWER, INSUFFICIENT_CONTENT_ANSWER}


# ═══════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════

class NodeState(str, Enum):
    """Execution state of a node; only moves forward"""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeState.FINISHED, NodeState.ERROR)


class NodeKind(str, Enum):
    ROOT = "root"
    NODE = "node"


class EventStatus(str, Enum):
    """Lifecycle signals emitted per node"""
    CREATED = "created"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"


# ═══════════════════════════════════════════════════
# Queries & Pages
# ═══════════════════════════════════════════════════

class Query(BaseModel):
    """Search text plus an optional engine hint and search operators"""
    text: str
    platform: Optional[str] = None
    commands: List[str] = Field(default_factory=list)

    def render(self) -> str:
        """Text sent to the search engine."""
        return " ".join([self.text, *self.commands]).strip()


class Page(BaseModel):
    """A scored (and possibly fetched) search result"""
    id: int = 0
    title: str = ""
    url: str
    content: Optional[str] = None
    description: Optional[str] = None
    relevance: Optional[float] = None
    platform: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class QuestionAnswer(BaseModel):
    content: str
    answer: str


class CacheItem(BaseModel):
    content: str
    final_url: str
    timestamp: float


# ═══════════════════════════════════════════════════
# Graph
# ═══════════════════════════════════════════════════

class Node(BaseModel):
    """One question in the decomposition tree"""
    id: str
    kind: NodeKind = NodeKind.NODE
    content: str
    state: NodeState = NodeState.NOT_STARTED
    answer: str = ""
    pages: List[Page] = Field(default_factory=list)
    queries: List[Query] = Field(default_factory=list)
    adjusted: bool = False
    error: Optional[str] = None
    timing: Dict[str, float] = Field(default_factory=dict)


class Edge(BaseModel):
    """Directed parent → child link, stored under the parent id"""
    id: str
    target: str


def _coerce_query_list(value):
    # Planners sometimes emit bare strings or a single object
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    return [{"text": q} if isinstance(q, str) else q for q in value]


class RawNode(BaseModel):
    """Planner output before materialisation"""
    content: str
    queries: List[Query] = Field(default_factory=list)
    children: List["RawNode"] = Field(default_factory=list)

    @field_validator("queries", mode="before")
    @classmethod
    def _coerce_queries(cls, value):
        return _coerce_query_list(value)

    @field_validator("children", mode="before")
    @classmethod
    def _coerce_children(cls, value):
        return value or []


# ═══════════════════════════════════════════════════
# Generation Schemas
# ═══════════════════════════════════════════════════

class PlanResponse(BaseModel):
    nodes: List[RawNode] = Field(default_factory=list)


class QueryResponse(BaseModel):
    text: str
    platform: Optional[str] = None
    commands: List[str] = Field(default_factory=list)

    @field_validator("commands", mode="before")
    @classmethod
    def _coerce_commands(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class RelevanceScore(BaseModel):
    index: int
    score: float

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value):
        return max(0.0, min(100.0, value))


class RelevanceResponse(BaseModel):
    scores: List[RelevanceScore] = Field(default_factory=list)


class AdjustmentResponse(BaseModel):
    content: str
    queries: List[Query] = Field(default_factory=list)

    @field_validator("queries", mode="before")
    @classmethod
    def _coerce_queries(cls, value):
        return _coerce_query_list(value)


# ═══════════════════════════════════════════════════
# Results & Events
# ═══════════════════════════════════════════════════

class ResolverResult(BaseModel):
    content: str
    pages: List[Page] = Field(default_factory=list)
    answer: str = ""
    timing: Dict[str, float] = Field(default_factory=dict)

    @property
    def is_usable(self) -> bool:
        return bool(self.pages) and bool(self.answer) and self.answer not in SENTINEL_ANSWERS


class ProgressEvent(BaseModel):
    """Lifecycle signal for one node, consumed by the API layer"""
    node_id: str
    status: EventStatus
    content: str
    answer: Optional[str] = None
    pages: Optional[List[Page]] = None
    timing: Optional[Dict[str, float]] = None
    parent_id: Optional[str] = None
    children: Optional[List[str]] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


class SearchGraphResult(BaseModel):
    """Final output of one plan() run"""
    nodes: Dict[str, Node] = Field(default_factory=dict)
    edges: Dict[str, List[Edge]] = Field(default_factory=dict)
    answer: str = ""
    timing: Dict[str, float] = Field(default_factory=dict)
    pages: List[Page] = Field(default_factory=list)
