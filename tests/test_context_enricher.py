"""
Tests for the context enricher and its decode step

Run with: pytest tests/test_context_enricher.py -v
"""
import json

import pytest

from conftest import FakeProvider
from models.graph_models import EnrichedContext, NodeType
from services.context_enricher import (
    ContextEnricher,
    build_enrichment_prompt,
    decode_enriched_context,
    parse_enriched_context,
)
from services.exceptions import EnrichmentParseError, GenerationError

GOOD_REPLY = """Here is the analysis:
{
  "relevantNodes": [
    {"id": "d1", "type": "Document", "properties": {"title": "Neo4j notes"}, "relevanceScore": 0.92, "reason": "Directly about indexes"},
    {"id": "t9", "type": "Meeting", "relevanceScore": "high"},
    {"type": "Project", "relevanceScore": 7}
  ],
  "keyInsights": ["The user is building a graph-backed chat"],
  "missingInformation": ["No recent documents about caching"],
  "recommendedDepth": 3
}
Hope that helps."""


class TestDecode:
    def test_extracts_json_surrounded_by_prose(self):
        enriched = decode_enriched_context(GOOD_REPLY)

        assert enriched.keyInsights == ["The user is building a graph-backed chat"]
        assert enriched.missingInformation == ["No recent documents about caching"]
        assert enriched.recommendedDepth == 3
        assert enriched.relevantNodes[0].id == "d1"
        assert enriched.relevantNodes[0].relevanceScore == pytest.approx(0.92)

    def test_nodes_normalized(self):
        nodes = decode_enriched_context(GOOD_REPLY).relevantNodes

        assert nodes[1].type == NodeType.TOPIC
        assert nodes[1].relevanceScore == 0.0
        assert nodes[1].properties == {}
        assert nodes[1].reason == ""
        assert nodes[2].id == ""
        assert nodes[2].type == NodeType.PROJECT
        assert nodes[2].relevanceScore == 1.0

    def test_missing_fields_default(self):
        enriched = decode_enriched_context('{"keyInsights": ["x"]}')
        assert enriched.relevantNodes == []
        assert enriched.missingInformation == []
        assert enriched.recommendedDepth == 2

    @pytest.mark.parametrize("text", [
        "no json here",
        "",
        "{not: valid json}",
        '{"relevantNodes": "oops"}',
        '{"keyInsights": "not a list"}',
        '{"relevantNodes": [42]}',
    ])
    def test_unusable_replies_raise(self, text):
        with pytest.raises(EnrichmentParseError):
            decode_enriched_context(text)

    def test_top_level_array_with_inner_object_is_rejected(self):
        # Greedy span picks the inner object text, which is not valid JSON on its own
        with pytest.raises(EnrichmentParseError):
            decode_enriched_context('[{"a": 1}, {"b": 2}]')

    def test_oversized_integer_is_a_parse_error(self):
        with pytest.raises(EnrichmentParseError):
            decode_enriched_context('{"recommendedDepth": 1' + "0" * 5000 + "}")


class TestParse:
    @pytest.mark.parametrize("text", [
        "no json here",
        "",
        "{broken",
        "{\"relevantNodes\": {}}",
        "}{",
        json.dumps({"recommendedDepth": "deep"}),
        '{"recommendedDepth": 1' + "0" * 5000 + "}",
        '{"a": ' + "[" * 100000 + "]" * 100000 + "}",
    ])
    def test_never_raises(self, text):
        enriched = parse_enriched_context(text)
        assert isinstance(enriched, EnrichedContext)
        assert enriched.recommendedDepth == 2

    def test_failure_gives_default(self):
        assert parse_enriched_context("nothing") == EnrichedContext()


class TestContextEnricher:
    @pytest.mark.asyncio
    async def test_analyze_context(self):
        provider = FakeProvider(enrichment=GOOD_REPLY)
        enricher = ContextEnricher(provider, max_tokens=2048)

        enriched = await enricher.analyze_context("USER: Ada", "What should I read?")

        assert enriched.recommendedDepth == 3
        call = provider.generate_calls[0]
        assert call["max_tokens"] == 2048
        assert call["system_prompt"] is None
        assert "USER: Ada" in call["user_message"]
        assert '"What should I read?"' in call["user_message"]

    @pytest.mark.asyncio
    async def test_garbage_reply_gives_default(self):
        enricher = ContextEnricher(FakeProvider(enrichment="I cannot help with that."))
        assert await enricher.analyze_context("", "q") == EnrichedContext()

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self):
        enricher = ContextEnricher(FakeProvider(generate_error=GenerationError("overloaded")))
        with pytest.raises(GenerationError):
            await enricher.analyze_context("", "q")


def test_prompt_demands_json_shape():
    prompt = build_enrichment_prompt("CONTEXT", "QUESTION")
    assert prompt.startswith("Given this user context graph:\nCONTEXT")
    assert "Return ONLY valid JSON" in prompt
    assert '"recommendedDepth": 1' in prompt
    assert "{{" not in prompt
