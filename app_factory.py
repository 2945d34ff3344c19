import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from datastore.neo4jconnection import AsyncNeo4jConnection
from routers.v1 import v1_router
from services.agent_service import AgentService
from services.auth_utils import SessionVerifier
from services.cache_utils import create_context_cache
from services.context_enricher import ContextEnricher
from services.context_service import GraphContextBuilder
from services.conversation_service import CONVERSATIONS_COLLECTION, ConversationStore
from services.error_handlers import register_exception_handlers
from services.llm_providers import create_provider
from services.logger_singleton import LoggerSingleton
from services.mongo_client import create_mongo_client, get_mongo_db
from version import __version__

# Logger
logger = LoggerSingleton.get_logger(__name__)


async def _ensure_indexes(store: ConversationStore):
    try:
        await store.ensure_indexes()
    except Exception as e:
        logger.warning(f"Could not ensure conversation indexes (non-critical): {e}")


def _provider_key(settings: Settings) -> Optional[str]:
    if settings.llm_provider == "openai":
        return settings.openai_api_key
    return settings.anthropic_api_key


def _provider_model(settings: Settings) -> str:
    if settings.llm_provider == "openai":
        return settings.openai_model
    return settings.anthropic_model


def build_services(app: FastAPI, settings: Settings):
    """Construct every collaborator once and hang the services off app.state"""
    app.state.graph_store = AsyncNeo4jConnection(
        settings.neo4j_uri,
        settings.neo4j_username,
        settings.neo4j_password,
        settings.neo4j_database,
    )
    app.state.context_cache = create_context_cache(
        settings.redis_url,
        maxsize=settings.local_cache_maxsize,
        ttl_seconds=settings.context_cache_ttl,
    )
    app.state.llm_provider = create_provider(
        settings.llm_provider,
        _provider_key(settings),
        _provider_model(settings),
    )
    app.state.mongo_client = create_mongo_client(settings.mongo_uri)
    database = get_mongo_db(app.state.mongo_client, settings.mongo_db_name)

    app.state.context_builder = GraphContextBuilder(
        app.state.graph_store,
        app.state.context_cache,
        cache_ttl=settings.context_cache_ttl,
        topic_limit=settings.topic_limit,
        document_limit=settings.document_limit,
        recent_days=settings.recent_days,
    )
    app.state.agent_service = AgentService(
        app.state.context_builder,
        ContextEnricher(app.state.llm_provider, max_tokens=settings.enrichment_max_tokens),
        app.state.llm_provider,
        context_timeout=settings.context_timeout,
        enrichment_timeout=settings.enrichment_timeout,
        stream_timeout=settings.stream_timeout,
        max_tokens=settings.max_tokens,
        history_turns=settings.history_turns,
    )
    app.state.conversation_store = ConversationStore(database[CONVERSATIONS_COLLECTION])


# Lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    index_task = None

    logger.info("Starting up application...")
    build_services(app, settings)
    logger.info(
        f"Services ready (llm provider: {settings.llm_provider}, "
        f"context cache: {app.state.context_cache.backend})"
    )

    try:
        index_task = asyncio.create_task(_ensure_indexes(app.state.conversation_store))
        yield
        logger.info("Lifespan yield complete")
    finally:
        logger.info("Application shutting down")

        if index_task and not index_task.done():
            index_task.cancel()
            try:
                await asyncio.wait_for(index_task, timeout=5.0)
            except asyncio.CancelledError:
                logger.info("Index task cancelled")
            except asyncio.TimeoutError:
                logger.warning("Index task cancellation timed out")

        try:
            await app.state.graph_store.close()
        except Exception as e:
            logger.error(f"Error closing Neo4j connection: {e}")

        try:
            await app.state.context_cache.close()
        except Exception as e:
            logger.warning(f"Error closing context cache: {e}")

        try:
            await app.state.llm_provider.close()
        except Exception as e:
            logger.warning(f"Error closing LLM provider: {e}")

        await app.state.mongo_client.close()
        logger.info("Lifespan shutdown complete")


# Main app factory
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Graph Context Chat API",
        description=(
            "Chat with an assistant grounded in your personal knowledge graph.\n"
            "## Authentication\n"
            "Send your session token either as a bearer token or in the `session` cookie:\n"
            "  ```\n  Authorization: Bearer <token>\n  ```\n"
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_verifier = SessionVerifier(settings.jwt_secret)
    app.state.session_cookie = settings.session_cookie

    # Middleware
    @app.middleware("http")
    async def add_server_timing_headers(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        # Time to first byte for streaming responses
        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Server-Processing-Ms"] = f"{duration_ms:.2f}"
        existing_server_timing = response.headers.get("Server-Timing")
        timing_value = f"app;dur={duration_ms:.2f}"
        if existing_server_timing:
            response.headers["Server-Timing"] = f"{existing_server_timing}, {timing_value}"
        else:
            response.headers["Server-Timing"] = timing_value
        return response

    register_exception_handlers(app)

    # Routers
    app.include_router(v1_router)

    @app.get("/health")
    async def health_check():
        """Basic health check that returns healthy if the application is running"""
        return {
            "status": "healthy",
            "message": "Service is running",
            "version": __version__,
        }

    @app.get("/neo4j-health")
    async def neo4j_health(request: Request):
        healthy = await request.app.state.graph_store.health_check()
        return JSONResponse(
            status_code=200 if healthy else 207,  # 207 for degraded service
            content={"status": "healthy" if healthy else "degraded"},
        )

    return app
