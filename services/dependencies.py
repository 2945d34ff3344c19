"""
FastAPI dependencies exposing the services built in the app lifespan
"""
from fastapi import Request

from services.agent_service import AgentService
from services.chat_stream import ChatStreamOrchestrator
from services.context_service import GraphContextBuilder
from services.conversation_service import ConversationStore


def get_context_builder(request: Request) -> GraphContextBuilder:
    return request.app.state.context_builder


def get_agent_service(request: Request) -> AgentService:
    return request.app.state.agent_service


def get_conversation_store(request: Request) -> ConversationStore:
    return request.app.state.conversation_store


def get_chat_orchestrator(request: Request) -> ChatStreamOrchestrator:
    return ChatStreamOrchestrator(request.app.state.agent_service, request.app.state.conversation_store)
