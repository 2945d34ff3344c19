"""
Renders a GraphContext into the compact text block injected into prompts.
"""
from typing import Any

from models.graph_models import ContextUsed, GraphContext, GraphNode, NodeType

CONTENT_PREVIEW_CHARS = 200
MAX_RELATIONSHIP_LINES = 20


def _prop(node: GraphNode, name: str) -> str:
    value: Any = node.properties.get(name)
    return "" if value is None else str(value)


def _document_line(node: GraphNode) -> str:
    preview = _prop(node, "content")[:CONTENT_PREVIEW_CHARS]
    return f"- {_prop(node, 'title')} ({_prop(node, 'doc_type')}): {preview}..."


def _topic_line(node: GraphNode) -> str:
    return f"- {_prop(node, 'name')}: {_prop(node, 'description')}"


def _project_line(node: GraphNode) -> str:
    return f"- {_prop(node, 'name')} ({_prop(node, 'status')}): {_prop(node, 'description')}"


def _concept_line(node: GraphNode) -> str:
    return f"- {_prop(node, 'name')}: {_prop(node, 'definition')}"


# Section order is fixed; the prompt relies on it staying stable
SECTIONS = (
    (NodeType.DOCUMENT, "DOCUMENTS:", _document_line),
    (NodeType.TOPIC, "TOPICS OF INTEREST:", _topic_line),
    (NodeType.PROJECT, "ACTIVE PROJECTS:", _project_line),
    (NodeType.CONCEPT, "KEY CONCEPTS:", _concept_line),
)


def context_to_string(context: GraphContext) -> str:
    lines = []

    users = context.nodes_of_type(NodeType.USER)
    if users:
        lines.append(f"USER: {_prop(users[0], 'name') or users[0].id}")

    for node_type, header, render in SECTIONS:
        nodes = context.nodes_of_type(node_type)
        if not nodes:
            continue
        lines.append(f"\n{header}")
        lines.extend(render(node) for node in nodes)

    if context.relationships:
        lines.append("\nRELATIONSHIPS:")
        for rel in context.relationships[:MAX_RELATIONSHIP_LINES]:
            lines.append(f"- {rel.from_} --[{rel.type}]--> {rel.to}")

    return "\n".join(lines)


def summarize_context_usage(context: GraphContext) -> ContextUsed:
    return ContextUsed(
        documentCount=len(context.nodes_of_type(NodeType.DOCUMENT)),
        topicCount=len(context.nodes_of_type(NodeType.TOPIC)),
        projectCount=len(context.nodes_of_type(NodeType.PROJECT)),
    )
