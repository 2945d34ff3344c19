"""
Graph Context Builder

Runs the depth-bounded traversal for a user, normalizes the loosely typed
records into a GraphContext and caches it for a short TTL. A cached context
can be up to `cache_ttl` seconds stale relative to graph writes; graph
mutations do not invalidate it.
"""
from datetime import date, datetime, time as dt_time
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from models.graph_models import (
    GraphContext,
    GraphNode,
    GraphRelationship,
    RawNode,
    RawRelationship,
    map_label_to_type,
)
from services.cache_utils import ContextCache
from services.context_queries import VALID_DEPTHS, build_context_params, build_context_query
from services.exceptions import ConfigurationError, GraphQueryError
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)


class GraphStore(Protocol):
    async def execute_query(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        ...


def context_cache_key(user_id: str, depth: int) -> str:
    return f"context:{user_id}:{depth}"


def to_native(value: Any) -> Any:
    """Convert driver values (Neo4j temporal types, nested containers) to JSON-safe values"""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): to_native(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_native(v) for v in value]
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    # neo4j.time.DateTime / Date / Time / Duration
    iso_format = getattr(value, "iso_format", None)
    if callable(iso_format):
        return iso_format()
    return str(value)


def process_results(records: List[Dict[str, Any]]) -> GraphContext:
    """
    Normalize traversal rows into a GraphContext.

    Nodes are deduplicated by id with the first occurrence kept. Relationships
    are kept even when an endpoint is missing from the node set, but records
    without both endpoint ids are dropped.
    """
    if not records or not isinstance(records[0], dict) or not records[0].get("result"):
        return GraphContext()

    result = records[0]["result"]
    nodes: Dict[str, GraphNode] = {}
    for raw in result.get("nodes") or []:
        if not raw:
            continue
        node = RawNode.model_validate(raw)
        if not node.id or node.id in nodes:
            continue
        nodes[node.id] = GraphNode(
            id=node.id,
            type=map_label_to_type(node.labels),
            properties=to_native(node.properties or {}),
        )

    relationships: List[GraphRelationship] = []
    for raw in result.get("relationships") or []:
        if not raw:
            continue
        rel = RawRelationship.model_validate(raw)
        if not rel.startNodeId or not rel.endNodeId:
            continue
        relationships.append(GraphRelationship(
            from_=rel.startNodeId,
            to=rel.endNodeId,
            type=rel.type,
            properties=to_native(rel.properties or {}),
        ))

    return GraphContext(nodes=list(nodes.values()), relationships=relationships)


class GraphContextBuilder:
    def __init__(self, graph_store: GraphStore, cache: ContextCache, cache_ttl: int = 300,
                 topic_limit: int = 5, document_limit: int = 10, recent_days: int = 30):
        self.graph_store = graph_store
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.topic_limit = topic_limit
        self.document_limit = document_limit
        self.recent_days = recent_days

    async def get_user_context(self, user_id: str, depth: int = 2) -> GraphContext:
        if depth not in VALID_DEPTHS:
            raise ValueError(f"depth must be one of {VALID_DEPTHS}, got {depth!r}")

        cache_key = context_cache_key(user_id, depth)
        cached = await self.cache.get(cache_key)
        if cached:
            try:
                return GraphContext.model_validate(cached)
            except ValidationError as e:
                logger.warning(f"Discarding unreadable cached context {cache_key}: {e}")

        query = build_context_query(depth)
        params = build_context_params(user_id, self.topic_limit, self.document_limit, self.recent_days)
        try:
            records = await self.graph_store.execute_query(query, params)
        except (GraphQueryError, ConfigurationError):
            raise
        except Exception as e:
            raise GraphQueryError(f"Graph query failed: {e}") from e

        context = process_results(records)
        logger.info(
            f"Built context for user {user_id} at depth {depth}: "
            f"{context.statistics.totalNodes} nodes, {context.statistics.totalRelationships} relationships"
        )

        await self.cache.set(cache_key, context.to_wire(), self.cache_ttl)
        return context
