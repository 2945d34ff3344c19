"""
Tests for the streaming response engine

Run with: pytest tests/test_agent_service.py -v
"""
import asyncio

import pytest

from conftest import FakeGraphStore, FakeProvider, graph_result, node, sample_records
from models.conversation_models import ChatOptions
from models.stream_events import ContextEvent, DoneEvent, EnrichedEvent, TokenEvent
from services.agent_service import AgentService, bounded_stream, estimate_tokens
from services.cache_utils import ContextCache, TTLCache
from services.context_enricher import ContextEnricher
from services.context_service import GraphContextBuilder
from services.exceptions import GenerationError, GraphQueryError
from services.prompt_builder import SYSTEM_PROMPT

ENRICHMENT_JSON = '{"relevantNodes": [], "keyInsights": ["Likes graphs"], "missingInformation": [], "recommendedDepth": 1}'


def make_agent(store=None, provider=None, **kwargs) -> AgentService:
    store = store or FakeGraphStore(sample_records())
    provider = provider or FakeProvider(enrichment=ENRICHMENT_JSON)
    builder = GraphContextBuilder(store, ContextCache(local_cache=TTLCache()))
    return AgentService(builder, ContextEnricher(provider), provider, **kwargs)


async def collect(agen):
    events = []
    async for event in agen:
        events.append(event)
    return events


class TestProcessQuestion:
    @pytest.mark.asyncio
    async def test_scenario_depth_one_user_and_two_topics(self):
        """Depth 1 with a user and two topics yields context, tokens and one done"""
        store = FakeGraphStore(graph_result([
            node("u1", "User", name="Ada"),
            node("t1", "Topic", name="Graphs"),
            node("t2", "Topic", name="LLMs"),
        ]))
        provider = FakeProvider(fragments=["Graphs ", "are ", "great."], enrichment=ENRICHMENT_JSON)
        agent = make_agent(store, provider)

        events = await collect(agent.process_question("u1", "What do I like?", ChatOptions(maxContextDepth=1)))

        context_events = [e for e in events if isinstance(e, ContextEvent)]
        enriched_events = [e for e in events if isinstance(e, EnrichedEvent)]
        token_events = [e for e in events if isinstance(e, TokenEvent)]
        done_events = [e for e in events if isinstance(e, DoneEvent)]

        assert len(context_events) == 1
        assert [n.id for n in context_events[0].data.nodes] == ["u1", "t1", "t2"]
        assert len(enriched_events) <= 1
        assert len(token_events) >= 1
        full = "".join(e.data for e in token_events)
        assert full == "Graphs are great."
        assert len(done_events) == 1
        assert done_events[0].tokensUsed == estimate_tokens(full)
        assert isinstance(events[0], ContextEvent)
        assert isinstance(events[-1], DoneEvent)
        assert "$topicLimit" in store.calls[0]["query"]
        assert "TAGGED_WITH" not in store.calls[0]["query"]

    @pytest.mark.asyncio
    async def test_event_order_with_enrichment(self):
        events = await collect(make_agent().process_question("u1", "q"))
        kinds = [e.type for e in events]

        assert kinds[0] == "context"
        assert kinds[1] == "enriched"
        assert kinds[-1] == "done"
        assert set(kinds[2:-1]) == {"token"}
        assert events[1].data.keyInsights == ["Likes graphs"]

    @pytest.mark.asyncio
    async def test_enrichment_failure_still_streams(self):
        """A throwing enrichment call never produces an enriched event"""
        provider = FakeProvider(generate_error=RuntimeError("enrichment exploded"))
        events = await collect(make_agent(provider=provider).process_question("u1", "q"))

        assert not any(isinstance(e, EnrichedEvent) for e in events)
        assert any(isinstance(e, TokenEvent) for e in events)
        assert isinstance(events[-1], DoneEvent)
        assert "KEY INSIGHTS" not in provider.stream_calls[0]["user_message"]

    @pytest.mark.asyncio
    async def test_enrichment_timeout_is_absorbed(self):
        class SlowProvider(FakeProvider):
            async def generate(self, user_message, system_prompt=None, max_tokens=4096):
                await asyncio.sleep(1)
                return ENRICHMENT_JSON

        events = await collect(make_agent(provider=SlowProvider(), enrichment_timeout=0.01).process_question("u1", "q"))

        assert not any(isinstance(e, EnrichedEvent) for e in events)
        assert isinstance(events[-1], DoneEvent)

    @pytest.mark.asyncio
    async def test_stream_failure_after_three_tokens(self):
        """Generation failing mid-stream stops before done and surfaces the error"""
        provider = FakeProvider(
            fragments=["a", "b", "c", "d"],
            enrichment=ENRICHMENT_JSON,
            stream_error=GenerationError("connection reset"),
            fail_after=3,
        )
        events = []
        with pytest.raises(GenerationError):
            async for event in make_agent(provider=provider).process_question("u1", "q"):
                events.append(event)

        assert [e.data for e in events if isinstance(e, TokenEvent)] == ["a", "b", "c"]
        assert not any(isinstance(e, DoneEvent) for e in events)
        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_graph_failure_is_fatal_before_any_event(self):
        agent = make_agent(store=FakeGraphStore(error=RuntimeError("bolt down")))
        gen = agent.process_question("u1", "q")
        with pytest.raises(GraphQueryError):
            await gen.__anext__()

    @pytest.mark.asyncio
    async def test_context_timeout_becomes_graph_query_error(self):
        class SlowStore(FakeGraphStore):
            async def execute_query(self, query, params=None):
                await asyncio.sleep(1)
                return []

        agent = make_agent(store=SlowStore(), context_timeout=0.01)
        with pytest.raises(GraphQueryError):
            await collect(agent.process_question("u1", "q"))

    @pytest.mark.asyncio
    async def test_history_and_prompt_reach_provider(self):
        provider = FakeProvider(enrichment=ENRICHMENT_JSON)
        history = [{"role": "user", "content": f"turn {i}"} for i in range(12)]

        await collect(make_agent(provider=provider, max_tokens=1234).process_question("u1", "Next?", history=history))

        call = provider.stream_calls[0]
        assert call["system_prompt"] == SYSTEM_PROMPT
        assert call["max_tokens"] == 1234
        assert call["user_message"].startswith("CONVERSATION HISTORY:\nUSER: turn 2\n")
        assert "turn 1\n" not in call["user_message"]
        assert "USER CONTEXT:\nUSER: Ada" in call["user_message"]
        assert call["user_message"].endswith("USER QUESTION: Next?")

    @pytest.mark.asyncio
    async def test_abandoned_stream_closes_provider(self):
        provider = FakeProvider(fragments=["x"] * 10, enrichment=ENRICHMENT_JSON)
        gen = make_agent(provider=provider).process_question("u1", "q")

        async for event in gen:
            if isinstance(event, TokenEvent):
                break
        await gen.aclose()

        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_token_events_carry_fragments_not_accumulation(self):
        provider = FakeProvider(fragments=["one ", "two ", "three"], enrichment=ENRICHMENT_JSON)
        events = await collect(make_agent(provider=provider).process_question("u1", "q"))
        assert [e.data for e in events if isinstance(e, TokenEvent)] == ["one ", "two ", "three"]


class TestBoundedStream:
    @pytest.mark.asyncio
    async def test_passes_through_without_timeout(self):
        async def fragments():
            for f in ("a", "b"):
                yield f

        assert [f async for f in bounded_stream(fragments(), None)] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_raises_generation_error_when_deadline_passes(self):
        async def slow():
            yield "first"
            await asyncio.sleep(1)
            yield "never"

        received = []
        with pytest.raises(GenerationError):
            async for fragment in bounded_stream(slow(), 0.05):
                received.append(fragment)
        assert received == ["first"]


class TestQuickResponse:
    @pytest.mark.asyncio
    async def test_quick_response_skips_enrichment(self):
        provider = FakeProvider(fragments=["Short ", "answer"], enrichment=ENRICHMENT_JSON)
        response = await make_agent(provider=provider).get_quick_response("u1", "Hi?")

        assert response.content == "Short answer"
        assert response.enrichedContext is None
        assert response.tokensUsed == estimate_tokens("Short answer")
        assert response.context.statistics.totalNodes == 6
        assert provider.generate_calls == []
        assert provider.stream_calls[0]["user_message"].startswith("USER CONTEXT:\n")


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcdefghij") == 3
    assert estimate_tokens("ab") == 1
