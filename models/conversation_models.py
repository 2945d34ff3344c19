"""
Conversation and message models for chat persistence and the chat API
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from models.graph_models import ContextUsed, EnrichedContext, GraphContext

DEFAULT_CONVERSATION_TITLE = "New Conversation"
TITLE_MAX_LENGTH = 50


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_title(content: str) -> str:
    """First 50 characters of a message, with an ellipsis when truncated"""
    if len(content) > TITLE_MAX_LENGTH:
        return content[:TITLE_MAX_LENGTH] + "..."
    return content


class Message(BaseModel):
    id: str = Field(default_factory=new_id)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    contextUsed: Optional[ContextUsed] = None
    contextGraph: Optional[GraphContext] = None
    enrichedContext: Optional[EnrichedContext] = None

    def to_document(self) -> Dict[str, Any]:
        """Mongo document form (datetimes stay native)"""
        document = self.model_dump(by_alias=True, exclude_none=True)
        document["role"] = self.role.value
        if self.contextGraph is not None:
            document["contextGraph"] = self.contextGraph.to_wire()
        if self.enrichedContext is not None:
            document["enrichedContext"] = self.enrichedContext.to_wire()
        return document


class Conversation(BaseModel):
    conversationId: str
    userId: str
    title: str = DEFAULT_CONVERSATION_TITLE
    titleDerived: bool = False
    messages: List[Message] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)


class ConversationSummary(BaseModel):
    id: str
    title: str
    updatedAt: datetime
    messageCount: int = 0
    preview: str = ""


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummary]


class ConversationDetailResponse(BaseModel):
    id: str
    title: str
    messages: List[Message]
    createdAt: datetime
    updatedAt: datetime


class CreateConversationRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)


class CreateConversationResponse(BaseModel):
    id: str
    title: str
    createdAt: datetime


class AddMessageRequest(BaseModel):
    role: MessageRole
    content: str = Field(..., min_length=1)
    contextUsed: Optional[ContextUsed] = None


class AddMessageResponse(BaseModel):
    message: Message


class ChatOptions(BaseModel):
    """Unknown keys (e.g. a client-side includeVisualization flag) are ignored"""
    maxContextDepth: Literal[1, 2, 3] = 2


class ChatRequest(BaseModel):
    """Request model for the streaming chat endpoint"""
    message: str = Field(..., min_length=1, max_length=500)
    conversationId: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Existing conversation to continue; a new one is created when omitted"
    )
    options: ChatOptions = Field(default_factory=ChatOptions)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "What should I read next for my graph database project?",
                "conversationId": "3f0c8a6be4d24b3c9d0f0a1b2c3d4e5f",
                "options": {"maxContextDepth": 2}
            }
        }
    )


class QuickChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=500)
