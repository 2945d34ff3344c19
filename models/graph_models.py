"""
Graph context models: typed nodes, relationships, statistics and enrichment results
"""
from collections import Counter
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class NodeType(str, Enum):
    """Closed set of node kinds in a user's knowledge graph"""
    USER = "User"
    DOCUMENT = "Document"
    TOPIC = "Topic"
    PROJECT = "Project"
    CONCEPT = "Concept"


# Priority order when a node carries several known labels
LABEL_PRIORITY = (
    NodeType.USER,
    NodeType.DOCUMENT,
    NodeType.TOPIC,
    NodeType.PROJECT,
    NodeType.CONCEPT,
)


def map_label_to_type(labels: Iterable[str]) -> NodeType:
    """Resolve raw graph labels to a NodeType; unknown labels fall back to Topic"""
    label_set = set(labels or [])
    for node_type in LABEL_PRIORITY:
        if node_type.value in label_set:
            return node_type
    return NodeType.TOPIC


def coerce_node_type(value: Any) -> NodeType:
    """Lenient NodeType conversion for model-produced node types"""
    if isinstance(value, NodeType):
        return value
    try:
        return NodeType(str(value))
    except ValueError:
        return NodeType.TOPIC


class RawNode(BaseModel):
    """Untyped node record as returned by a traversal query"""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    properties: Optional[Dict[str, Any]] = None


class RawRelationship(BaseModel):
    """Untyped relationship record as returned by a traversal query"""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    startNodeId: Optional[str] = None
    endNodeId: Optional[str] = None
    type: str = ""
    properties: Optional[Dict[str, Any]] = None


class GraphNode(BaseModel):
    id: str
    type: NodeType
    properties: Dict[str, Any] = Field(default_factory=dict)
    relevanceScore: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    reason: Optional[str] = None


class GraphRelationship(BaseModel):
    """Edge between two node ids; endpoints are not checked against the node set"""
    from_: str = Field(..., alias="from")
    to: str
    type: str
    properties: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class GraphStatistics(BaseModel):
    totalNodes: int = 0
    totalRelationships: int = 0
    relevantNodes: int = 0
    nodeTypes: Dict[str, int] = Field(default_factory=dict)
    relationshipTypes: Dict[str, int] = Field(default_factory=dict)


def compute_statistics(nodes: List[GraphNode], relationships: List[GraphRelationship]) -> GraphStatistics:
    node_types = Counter(node.type.value for node in nodes)
    relationship_types = Counter(rel.type for rel in relationships)
    relevant = sum(
        1 for node in nodes
        if node.relevanceScore is not None and node.relevanceScore > 0.5
    )
    return GraphStatistics(
        totalNodes=len(nodes),
        totalRelationships=len(relationships),
        relevantNodes=relevant,
        nodeTypes=dict(node_types),
        relationshipTypes=dict(relationship_types),
    )


class GraphContext(BaseModel):
    """
    Bounded snapshot of a user's graph neighbourhood.

    statistics is always recomputed from nodes and relationships on
    construction, so a supplied value is ignored.
    """
    nodes: List[GraphNode] = Field(default_factory=list)
    relationships: List[GraphRelationship] = Field(default_factory=list)
    statistics: Optional[GraphStatistics] = None

    @model_validator(mode="after")
    def _recompute_statistics(self) -> "GraphContext":
        self.statistics = compute_statistics(self.nodes, self.relationships)
        return self

    def nodes_of_type(self, node_type: NodeType) -> List[GraphNode]:
        return [node for node in self.nodes if node.type == node_type]

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict with wire field names (from/to)"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EnrichedContext(BaseModel):
    """Result of the LLM relevance pass; immutable once built"""
    relevantNodes: List[GraphNode] = Field(default_factory=list)
    keyInsights: List[str] = Field(default_factory=list)
    missingInformation: List[str] = Field(default_factory=list)
    recommendedDepth: Literal[1, 2, 3] = 2

    model_config = ConfigDict(frozen=True)

    @field_validator("recommendedDepth", mode="before")
    @classmethod
    def _default_depth(cls, value: Any) -> int:
        if isinstance(value, bool):
            return 2
        if isinstance(value, (int, float)) and value in (1, 2, 3):
            return int(value)
        return 2

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def empty_enriched_context() -> EnrichedContext:
    return EnrichedContext()


class ContextUsed(BaseModel):
    documentCount: int = 0
    topicCount: int = 0
    projectCount: int = 0
