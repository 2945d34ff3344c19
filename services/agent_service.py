"""
Streaming Response Engine

Drives one question through the pipeline:
build context -> enrich -> assemble prompt -> stream answer -> done.
"""
import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Iterable, Optional

from models.conversation_models import ChatOptions
from models.graph_models import EnrichedContext, GraphContext
from models.stream_events import (
    AgentResponse,
    ContextEvent,
    DoneEvent,
    EnrichedEvent,
    StreamEvent,
    TokenEvent,
)
from services.context_enricher import ContextEnricher
from services.context_serializer import context_to_string
from services.context_service import GraphContextBuilder
from services.exceptions import GenerationError, GraphQueryError
from services.llm_providers import LLMProvider
from services.logger_singleton import LoggerSingleton
from services.prompt_builder import (
    SYSTEM_PROMPT,
    HistoryItem,
    build_history_string,
    build_user_message,
)

logger = LoggerSingleton.get_logger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token, halves rounded up"""
    return int(len(text) / 4 + 0.5)


async def bounded_stream(fragments: AsyncIterator[str], timeout: Optional[float]) -> AsyncIterator[str]:
    """
    Re-yield fragments, raising GenerationError once `timeout` seconds have
    passed since the first fragment was requested.
    """
    if timeout is None:
        async for fragment in fragments:
            yield fragment
        return

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    iterator = fragments.__aiter__()
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise GenerationError(f"Response stream exceeded {timeout}s")
        try:
            fragment = await asyncio.wait_for(iterator.__anext__(), remaining)
        except StopAsyncIteration:
            return
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Response stream exceeded {timeout}s") from e
        yield fragment


class AgentService:
    def __init__(self, builder: GraphContextBuilder, enricher: ContextEnricher, provider: LLMProvider,
                 context_timeout: Optional[float] = 15.0, enrichment_timeout: Optional[float] = 30.0,
                 stream_timeout: Optional[float] = None, max_tokens: int = 4096, history_turns: int = 10):
        self.builder = builder
        self.enricher = enricher
        self.provider = provider
        self.context_timeout = context_timeout
        self.enrichment_timeout = enrichment_timeout
        self.stream_timeout = stream_timeout
        self.max_tokens = max_tokens
        self.history_turns = history_turns

    async def _build_context(self, user_id: str, depth: int) -> GraphContext:
        try:
            return await asyncio.wait_for(self.builder.get_user_context(user_id, depth), self.context_timeout)
        except asyncio.TimeoutError as e:
            raise GraphQueryError(f"Context build timed out after {self.context_timeout}s") from e

    async def _enrich(self, context_string: str, question: str) -> Optional[EnrichedContext]:
        """Enrichment is optional: any failure is logged and yields None"""
        try:
            return await asyncio.wait_for(
                self.enricher.analyze_context(context_string, question),
                self.enrichment_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Context enrichment timed out after {self.enrichment_timeout}s")
        except Exception as e:
            logger.warning(f"Context enrichment failed: {e}")
        return None

    async def process_question(self, user_id: str, question: str, options: Optional[ChatOptions] = None,
                               history: Optional[Iterable[HistoryItem]] = None) -> AsyncIterator[StreamEvent]:
        """
        Yield context, optional enriched, token fragments and a final done event.

        Context failures abort before anything is yielded. A failure while
        streaming aborts the generator without a done event.
        """
        options = options or ChatOptions()

        context = await self._build_context(user_id, options.maxContextDepth)
        yield ContextEvent(data=context)

        context_string = context_to_string(context)

        enriched = await self._enrich(context_string, question)
        if enriched is not None:
            yield EnrichedEvent(data=enriched)

        history_string = build_history_string(history, self.history_turns)
        user_message = build_user_message(question, context_string, enriched, history_string)

        parts = []
        async with aclosing(self.provider.stream_generate(SYSTEM_PROMPT, user_message, self.max_tokens)) as fragments:
            async with aclosing(bounded_stream(fragments, self.stream_timeout)) as bounded:
                async for fragment in bounded:
                    parts.append(fragment)
                    yield TokenEvent(data=fragment)

        full_response = "".join(parts)
        logger.info(f"Answered question for user {user_id}: {len(full_response)} chars")
        yield DoneEvent(tokensUsed=estimate_tokens(full_response))

    async def get_quick_response(self, user_id: str, question: str, depth: int = 2) -> AgentResponse:
        """Non-streaming answer without enrichment or history"""
        context = await self._build_context(user_id, depth)
        user_message = build_user_message(question, context_to_string(context))

        parts = []
        async with aclosing(self.provider.stream_generate(SYSTEM_PROMPT, user_message, self.max_tokens)) as fragments:
            async with aclosing(bounded_stream(fragments, self.stream_timeout)) as bounded:
                async for fragment in bounded:
                    parts.append(fragment)

        content = "".join(parts)
        return AgentResponse(content=content, context=context, tokensUsed=estimate_tokens(content))
