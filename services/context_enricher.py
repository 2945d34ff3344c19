"""
Context Enricher

Asks the text generation provider which parts of a serialized context matter
for a question, and turns its free-form reply into an EnrichedContext.

Decoding is split in two: decode_enriched_context() is strict and raises
EnrichmentParseError, parse_enriched_context() applies the default-on-error
policy and never raises. Provider failures are not caught here.
"""
import json
import math
import re
from typing import Any, Dict, List

from pydantic import ValidationError

from models.graph_models import (
    EnrichedContext,
    GraphNode,
    coerce_node_type,
    empty_enriched_context,
)
from services.exceptions import EnrichmentParseError
from services.llm_providers import LLMProvider
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)

# Greedy: first "{" to last "}" so nested objects stay inside the span
JSON_SPAN = re.compile(r"\{[\s\S]*\}")

ENRICHMENT_PROMPT = """Given this user context graph:
{context}

And this user question:
"{question}"

Analyze and enrich the context by:
1. Identifying the most relevant nodes and relationships
2. Scoring each element's relevance (0-1)
3. Extracting key insights that connect to the question
4. Flagging any missing information that would improve the answer

Return ONLY valid JSON with this exact structure:
{{
  "relevantNodes": [{{"id": "string", "type": "Document|Project|Topic|Concept", "properties": {{}}, "relevanceScore": 0.0, "reason": "string"}}],
  "keyInsights": ["string"],
  "missingInformation": ["string"],
  "recommendedDepth": 1
}}"""


def build_enrichment_prompt(context_string: str, question: str) -> str:
    return ENRICHMENT_PROMPT.format(context=context_string, question=question)


def _clamp_score(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score):
        return 0.0
    return min(max(score, 0.0), 1.0)


def _normalize_node(raw: Any) -> GraphNode:
    if not isinstance(raw, dict):
        raise EnrichmentParseError(f"relevantNodes entry is not an object: {raw!r}")
    properties = raw.get("properties")
    return GraphNode(
        id=str(raw.get("id") or ""),
        type=coerce_node_type(raw.get("type")),
        properties=properties if isinstance(properties, dict) else {},
        relevanceScore=_clamp_score(raw.get("relevanceScore")),
        reason=str(raw.get("reason") or ""),
    )


def _string_list(parsed: Dict[str, Any], field: str) -> List[str]:
    value = parsed.get(field)
    if value is None:
        return []
    if not isinstance(value, list):
        raise EnrichmentParseError(f"{field} must be a list, got {type(value).__name__}")
    return [str(item) for item in value if item is not None]


def decode_enriched_context(text: str) -> EnrichedContext:
    """
    Strictly decode model output into an EnrichedContext.

    Raises:
        EnrichmentParseError: no JSON object span, invalid JSON, a non-object
            top level, or fields of the wrong shape.
    """
    match = JSON_SPAN.search(text or "")
    if not match:
        raise EnrichmentParseError("No JSON object found in enrichment response")

    try:
        parsed = json.loads(match.group(0))
    except (ValueError, RecursionError) as e:
        # JSONDecodeError is a ValueError; so are oversized integer literals
        raise EnrichmentParseError(f"Invalid enrichment JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise EnrichmentParseError("Enrichment JSON is not an object")

    raw_nodes = parsed.get("relevantNodes") or []
    if not isinstance(raw_nodes, list):
        raise EnrichmentParseError("relevantNodes must be a list")

    try:
        return EnrichedContext(
            relevantNodes=[_normalize_node(node) for node in raw_nodes],
            keyInsights=_string_list(parsed, "keyInsights"),
            missingInformation=_string_list(parsed, "missingInformation"),
            recommendedDepth=parsed.get("recommendedDepth"),
        )
    except ValidationError as e:
        raise EnrichmentParseError(f"Enrichment fields have the wrong shape: {e}") from e


def parse_enriched_context(text: str) -> EnrichedContext:
    """Decode model output, falling back to the empty default on any parse failure"""
    try:
        return decode_enriched_context(text)
    except EnrichmentParseError as e:
        logger.warning(f"Using default enrichment: {e}")
        return empty_enriched_context()


class ContextEnricher:
    def __init__(self, provider: LLMProvider, max_tokens: int = 2048):
        self.provider = provider
        self.max_tokens = max_tokens

    async def analyze_context(self, context_string: str, question: str) -> EnrichedContext:
        prompt = build_enrichment_prompt(context_string, question)
        text = await self.provider.generate(prompt, max_tokens=self.max_tokens)
        enriched = parse_enriched_context(text)
        logger.info(
            f"Enrichment found {len(enriched.relevantNodes)} relevant nodes, "
            f"{len(enriched.keyInsights)} insights"
        )
        return enriched
