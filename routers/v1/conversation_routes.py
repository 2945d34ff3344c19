"""
Conversation routes for listing, reading, creating and deleting chat history
"""
from fastapi import APIRouter, Depends

from models.conversation_models import (
    AddMessageRequest,
    AddMessageResponse,
    ConversationDetailResponse,
    ConversationListResponse,
    CreateConversationRequest,
    CreateConversationResponse,
    Message,
)
from models.user_models import AuthUser
from services.auth_utils import get_current_user
from services.conversation_service import ConversationStore
from services.dependencies import get_conversation_store
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)

router = APIRouter(prefix="/conversations", tags=["Conversations"])


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    user: AuthUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationListResponse:
    """The caller's 50 most recently updated conversations"""
    conversations = await store.list_conversations(user.userId)
    return ConversationListResponse(conversations=conversations)


@router.post("", response_model=CreateConversationResponse, status_code=201)
async def create_conversation(
    create_request: CreateConversationRequest,
    user: AuthUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
) -> CreateConversationResponse:
    conversation = await store.create(user.userId, create_request.title)
    return CreateConversationResponse(
        id=conversation.conversationId,
        title=conversation.title,
        createdAt=conversation.createdAt,
    )


@router.get("/{conversation_id}",
    response_model=ConversationDetailResponse,
    responses={404: {"description": "Conversation not found"}}
)
async def get_conversation(
    conversation_id: str,
    user: AuthUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationDetailResponse:
    conversation = await store.get(conversation_id, user.userId)
    return ConversationDetailResponse(
        id=conversation.conversationId,
        title=conversation.title,
        messages=conversation.messages,
        createdAt=conversation.createdAt,
        updatedAt=conversation.updatedAt,
    )


@router.delete("/{conversation_id}", responses={404: {"description": "Conversation not found"}})
async def delete_conversation(
    conversation_id: str,
    user: AuthUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
):
    await store.delete(conversation_id, user.userId)
    return {"success": True}


@router.post("/{conversation_id}/messages",
    response_model=AddMessageResponse,
    status_code=201,
    responses={404: {"description": "Conversation not found"}}
)
async def add_message(
    conversation_id: str,
    add_request: AddMessageRequest,
    user: AuthUser = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
) -> AddMessageResponse:
    """Append a message; the first user message also names the conversation"""
    message = Message(role=add_request.role, content=add_request.content, contextUsed=add_request.contextUsed)
    await store.append_message(conversation_id, user.userId, message)
    return AddMessageResponse(message=message)
