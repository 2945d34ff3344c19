"""
Chat stream orchestration.

Turns AgentService events into server-sent-event frames and keeps the
conversation store in step with the stream:

    data: {"conversationId": ...}
    data: {"context": ...}
    data: {"enrichedContext": ...}        (optional)
    data: {"content": "<fragment>"}       (repeated)
    data: {"done": true, "messageId": ..., "conversationId": ..., "tokensUsed": n}

The assistant message is written before the done frame is sent. A failure
after the first frame becomes a single {"error": ...} frame; the partial
answer is never stored.
"""
import asyncio
import json
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from models.conversation_models import ChatRequest, Conversation, Message, MessageRole
from models.graph_models import EnrichedContext, GraphContext
from models.stream_events import ContextEvent, DoneEvent, EnrichedEvent, TokenEvent
from services.agent_service import AgentService
from services.context_serializer import summarize_context_usage
from services.conversation_service import ConversationStore
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)


def format_sse(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


class ChatStreamOrchestrator:
    def __init__(self, agent_service: AgentService, conversation_store: ConversationStore):
        self.agent_service = agent_service
        self.conversation_store = conversation_store

    async def start_turn(self, user_id: str, request: ChatRequest) -> Tuple[str, List[Message]]:
        """
        Resolve (or create) the conversation and record the user message.

        Runs before any frame is sent, so a missing conversation still maps
        to a plain 404. Returns the conversation id and the history that
        preceded this turn.
        """
        if request.conversationId:
            conversation: Conversation = await self.conversation_store.get(request.conversationId, user_id)
        else:
            conversation = await self.conversation_store.create(user_id)

        history = list(conversation.messages)
        user_message = Message(role=MessageRole.USER, content=request.message)
        await self.conversation_store.append_message(conversation.conversationId, user_id, user_message)
        return conversation.conversationId, history

    async def stream(self, user_id: str, conversation_id: str, request: ChatRequest,
                     history: Optional[List[Message]] = None) -> AsyncIterator[str]:
        yield format_sse({"conversationId": conversation_id})

        context: Optional[GraphContext] = None
        enriched: Optional[EnrichedContext] = None
        parts: List[str] = []

        try:
            events = self.agent_service.process_question(user_id, request.message, request.options, history)
            async with aclosing(events) as stream:
                async for event in stream:
                    if isinstance(event, ContextEvent):
                        context = event.data
                        yield format_sse({"context": event.data.to_wire()})
                    elif isinstance(event, EnrichedEvent):
                        enriched = event.data
                        yield format_sse({"enrichedContext": event.data.to_wire()})
                    elif isinstance(event, TokenEvent):
                        parts.append(event.data)
                        yield format_sse({"content": event.data})
                    elif isinstance(event, DoneEvent):
                        assistant_message = Message(
                            role=MessageRole.ASSISTANT,
                            content="".join(parts),
                            contextUsed=summarize_context_usage(context) if context is not None else None,
                            contextGraph=context,
                            enrichedContext=enriched,
                        )
                        await self.conversation_store.append_message(conversation_id, user_id, assistant_message)
                        yield format_sse({
                            "done": True,
                            "messageId": assistant_message.id,
                            "conversationId": conversation_id,
                            "tokensUsed": event.tokensUsed,
                        })
        except asyncio.CancelledError:
            logger.info(f"Chat stream for conversation {conversation_id} cancelled by client")
            raise
        except Exception as e:
            logger.error(f"Chat stream failed for conversation {conversation_id}: {e}", exc_info=True)
            yield format_sse({"error": str(e) or type(e).__name__})
