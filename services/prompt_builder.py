"""
Prompt assembly for grounded answers.
"""
from typing import Iterable, Optional, Union

from models.conversation_models import Message
from models.graph_models import EnrichedContext

SYSTEM_PROMPT = """You are a context-aware AI assistant with access to the user's personal knowledge graph. Your goal is to provide accurate, personalized responses based on their documents, projects, interests, and concepts.

CONTEXT AVAILABLE:
- Recent documents the user owns
- Topics they're interested in
- Active projects they're working on
- Related concepts and relationships

GUIDELINES:
1. Cite specific documents or projects when referencing information
2. Be concise but comprehensive
3. If context is insufficient, acknowledge limitations
4. Suggest related topics the user might explore
5. Maintain conversation history awareness

RESPONSE FORMAT:
- Start with a direct answer
- Provide supporting details from context
- End with a relevant follow-up question or suggestion (if appropriate)"""

MAX_RELEVANT_NODES = 5
HistoryItem = Union[Message, dict]


def _bullets(items: Iterable[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def top_relevant_nodes(enriched_context: EnrichedContext):
    ranked = sorted(enriched_context.relevantNodes, key=lambda node: node.relevanceScore or 0, reverse=True)
    return ranked[:MAX_RELEVANT_NODES]


def build_history_string(history: Optional[Iterable[HistoryItem]], max_turns: int = 10) -> str:
    """Render the last `max_turns` turns as `ROLE: content` lines"""
    if not history or max_turns <= 0:
        return ""
    turns = list(history)[-max_turns:]
    lines = []
    for turn in turns:
        if isinstance(turn, Message):
            role, content = turn.role.value, turn.content
        else:
            role, content = str(turn.get("role", "")), str(turn.get("content", ""))
        lines.append(f"{role.upper()}: {content}")
    return "\n".join(lines)


def build_user_message(question: str, context_string: str,
                       enriched_context: Optional[EnrichedContext] = None,
                       history_string: str = "") -> str:
    """
    Combine history, graph context, enrichment and the question into one user turn.

    Sections with no data are left out entirely, header included.
    """
    sections = []

    if history_string:
        sections.append(f"CONVERSATION HISTORY:\n{history_string}")

    sections.append(f"USER CONTEXT:\n{context_string}")

    if enriched_context is not None:
        if enriched_context.keyInsights:
            sections.append(f"KEY INSIGHTS:\n{_bullets(enriched_context.keyInsights)}")
        if enriched_context.missingInformation:
            sections.append(
                f"NOTE - Missing information that might help:\n{_bullets(enriched_context.missingInformation)}"
            )
        if enriched_context.relevantNodes:
            node_lines = [
                f"{node.id} ({node.type.value}): {node.reason or 'Relevant to query'} "
                f"[Score: {round((node.relevanceScore or 0) * 100)}%]"
                for node in top_relevant_nodes(enriched_context)
            ]
            sections.append(f"MOST RELEVANT NODES:\n{_bullets(node_lines)}")

    sections.append(f"USER QUESTION: {question}")
    return "\n\n".join(sections)
