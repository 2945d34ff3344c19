from fastapi import APIRouter

from .chat_routes import router as chat_router
from .context_routes import router as context_router
from .conversation_routes import router as conversation_router

v1_router = APIRouter(prefix="/v1", tags=["v1"])

v1_router.include_router(chat_router)
v1_router.include_router(context_router)
v1_router.include_router(conversation_router)
