"""
Cypher traversals for the three context depths.

Every query returns a single row with a `result` map:
    {nodes: [{id, labels, properties}], relationships: [{startNodeId, endNodeId, type, properties}]}

Fan-out is bounded by parameters ($topicLimit, $documentLimit, $recentDays)
so the context (and the prompt built from it) stays small as the graph grows.
"""
from typing import Any, Dict, List

VALID_DEPTHS = (1, 2, 3)


def _node_maps(variable: str) -> str:
    return f"[n IN {variable} | {{id: n.id, labels: labels(n), properties: properties(n)}}]"


def _with(carried: List[str], *extra: str) -> str:
    return "WITH " + ", ".join(carried + list(extra))


def _base_traversal() -> List[str]:
    """User, ranked interest topics, recent documents and active projects"""
    return [
        "MATCH (u:User {id: $userId})",
        "OPTIONAL MATCH (u)-[interest:INTERESTED_IN]->(t:Topic)",
        "WITH u, t, coalesce(interest.strength, 0) AS strength",
        "ORDER BY strength DESC",
        "WITH u, collect(t)[..$topicLimit] AS topicNodes",
        "OPTIONAL MATCH (u)-[:OWNS]->(d:Document)",
        "WHERE d.updated_at > datetime() - duration({days: $recentDays})",
        "WITH u, topicNodes, d",
        "ORDER BY d.updated_at DESC",
        "WITH u, topicNodes, collect(DISTINCT d)[..$documentLimit] AS documentNodes",
        "OPTIONAL MATCH (u)-[wp:WORKING_ON]->(p:Project)",
        "WHERE p.status = 'active'",
        "WITH u, topicNodes, documentNodes, collect(DISTINCT CASE WHEN p IS NULL THEN NULL ELSE "
        "{id: p.id, labels: labels(p), properties: p{.*, role: wp.role}} END) AS projectMaps",
    ]


def _first_hop(carried: List[str]) -> List[str]:
    """Topics tagged on the selected documents and concepts used by the selected projects"""
    lines = [
        "OPTIONAL MATCH (doc:Document)-[tw:TAGGED_WITH]->(tagTopic:Topic)",
        "WHERE doc IN documentNodes",
        _with(
            list(carried),
            "collect(DISTINCT tagTopic) AS taggedTopicNodes",
            "collect(DISTINCT CASE WHEN tw IS NULL THEN NULL ELSE "
            "{startNodeId: doc.id, endNodeId: tagTopic.id, type: type(tw), properties: properties(tw)} END) AS taggedRels",
        ),
    ]
    carried.extend(["taggedTopicNodes", "taggedRels"])
    lines += [
        "OPTIONAL MATCH (proj:Project)-[uses:USES]->(c:Concept)",
        "WHERE proj.id IN [pm IN projectMaps | pm.id]",
        _with(
            list(carried),
            "collect(DISTINCT c) AS conceptNodes",
            "collect(DISTINCT CASE WHEN uses IS NULL THEN NULL ELSE "
            "{startNodeId: proj.id, endNodeId: c.id, type: type(uses), properties: properties(uses)} END) AS usesRels",
        ),
    ]
    carried.extend(["conceptNodes", "usesRels"])
    return lines


def _second_hop(carried: List[str]) -> List[str]:
    """Topics the concepts belong to and topics related to the interest topics"""
    lines = [
        "OPTIONAL MATCH (con:Concept)-[po:PART_OF]->(conceptTopic:Topic)",
        "WHERE con IN conceptNodes",
        _with(
            list(carried),
            "collect(DISTINCT conceptTopic) AS conceptTopicNodes",
            "collect(DISTINCT CASE WHEN po IS NULL THEN NULL ELSE "
            "{startNodeId: con.id, endNodeId: conceptTopic.id, type: type(po), properties: properties(po)} END) AS partOfRels",
        ),
    ]
    carried.extend(["conceptTopicNodes", "partOfRels"])
    lines += [
        "OPTIONAL MATCH (top:Topic)-[rt:RELATED_TO]->(linked:Topic)",
        "WHERE top IN topicNodes",
        _with(
            list(carried),
            "collect(DISTINCT linked) AS linkedTopicNodes",
            "collect(DISTINCT CASE WHEN rt IS NULL THEN NULL ELSE "
            "{startNodeId: top.id, endNodeId: linked.id, type: type(rt), properties: properties(rt)} END) AS relatedRels",
        ),
    ]
    carried.extend(["linkedTopicNodes", "relatedRels"])
    return lines


def build_context_query(depth: int) -> str:
    """Build the traversal for a depth; raises ValueError outside 1..3"""
    if depth not in VALID_DEPTHS:
        raise ValueError(f"depth must be one of {VALID_DEPTHS}, got {depth!r}")

    carried = ["u", "topicNodes", "documentNodes", "projectMaps"]
    lines = _base_traversal()

    # Node order in the result: user, topics, documents, projects, then each hop
    node_parts = [
        "[{id: u.id, labels: labels(u), properties: properties(u)}]",
        _node_maps("topicNodes"),
        _node_maps("documentNodes"),
        "projectMaps",
    ]
    relationship_parts: List[str] = []

    if depth >= 2:
        lines += _first_hop(carried)
        node_parts += [_node_maps("taggedTopicNodes"), _node_maps("conceptNodes")]
        relationship_parts += ["taggedRels", "usesRels"]

    if depth >= 3:
        lines += _second_hop(carried)
        node_parts += [_node_maps("conceptTopicNodes"), _node_maps("linkedTopicNodes")]
        relationship_parts += ["partOfRels", "relatedRels"]

    relationships = " + ".join(relationship_parts) if relationship_parts else "[]"
    lines += [
        "RETURN {",
        f"  nodes: {' + '.join(node_parts)},",
        f"  relationships: {relationships}",
        "} AS result",
    ]
    return "\n".join(lines)


def build_context_params(user_id: str, topic_limit: int = 5, document_limit: int = 10,
                         recent_days: int = 30) -> Dict[str, Any]:
    return {
        "userId": user_id,
        "topicLimit": topic_limit,
        "documentLimit": document_limit,
        "recentDays": recent_days,
    }
