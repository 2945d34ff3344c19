"""
Chat routes: streaming grounded answers and quick non-streaming answers
"""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from models.conversation_models import ChatRequest, QuickChatRequest
from models.stream_events import AgentResponse
from models.user_models import AuthUser
from services.agent_service import AgentService
from services.auth_utils import get_current_user
from services.chat_stream import ChatStreamOrchestrator
from services.dependencies import get_agent_service, get_chat_orchestrator
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Server-sent event stream"},
        401: {"description": "Unauthorized"},
        404: {"description": "Conversation not found"},
        422: {"description": "Validation failed"},
    },
    description="""
    Ask a question grounded in the caller's knowledge graph and stream the answer.

    The response is a `text/event-stream` of `data: <json>` frames:
    `conversationId` first, then `context`, an optional `enrichedContext`,
    one `content` frame per answer fragment, and a terminal `done` frame.
    A failure after streaming has started is reported as an `error` frame.

    Omit `conversationId` to start a new conversation.
    """
)
async def chat(
    chat_request: ChatRequest,
    user: AuthUser = Depends(get_current_user),
    orchestrator: ChatStreamOrchestrator = Depends(get_chat_orchestrator),
):
    conversation_id, history = await orchestrator.start_turn(user.userId, chat_request)
    logger.info(f"Streaming answer for user {user.userId} in conversation {conversation_id}")
    return StreamingResponse(
        orchestrator.stream(user.userId, conversation_id, chat_request, history),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/quick", response_model=AgentResponse)
async def quick_chat(
    quick_request: QuickChatRequest,
    user: AuthUser = Depends(get_current_user),
    agent_service: AgentService = Depends(get_agent_service),
) -> AgentResponse:
    """Answer without enrichment, history or streaming"""
    return await agent_service.get_quick_response(user.userId, quick_request.message)
