"""
Events produced by the streaming response engine, in emission order:
context -> enriched (optional) -> token* -> done
"""
from typing import Literal, Optional, Union

from pydantic import BaseModel

from models.graph_models import EnrichedContext, GraphContext


class ContextEvent(BaseModel):
    type: Literal["context"] = "context"
    data: GraphContext


class EnrichedEvent(BaseModel):
    type: Literal["enriched"] = "enriched"
    data: EnrichedContext


class TokenEvent(BaseModel):
    """One incremental fragment, never the accumulated text"""
    type: Literal["token"] = "token"
    data: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    tokensUsed: int


StreamEvent = Union[ContextEvent, EnrichedEvent, TokenEvent, DoneEvent]


class AgentResponse(BaseModel):
    content: str
    context: GraphContext
    enrichedContext: Optional[EnrichedContext] = None
    tokensUsed: int = 0
