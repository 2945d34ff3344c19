"""
Global exception handlers for the FastAPI application.
Maps pipeline and database errors to JSON error responses instead of crashing.
"""

import time
from fastapi import Request
from fastapi.responses import JSONResponse
from pymongo.errors import (
    AutoReconnect,
    ServerSelectionTimeoutError,
    ConnectionFailure,
    OperationFailure
)
from neo4j.exceptions import (
    ServiceUnavailable,
    AuthError,
    TransientError
)

from services.exceptions import (
    ConfigurationError,
    ConversationNotFoundError,
    GenerationError,
    GraphQueryError,
)
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)

# Track error rates to prevent spam
_error_counts = {}
_error_window = 60  # seconds
_max_errors_per_window = 10


def is_error_rate_limited(error_type: str) -> bool:
    """Check if we're logging too many errors of this type"""
    current_time = time.time()

    if error_type not in _error_counts:
        _error_counts[error_type] = {"count": 0, "first_error": current_time}
        return False

    error_info = _error_counts[error_type]

    # Reset if outside window
    if current_time - error_info["first_error"] > _error_window:
        error_info["count"] = 0
        error_info["first_error"] = current_time
        return False

    error_info["count"] += 1
    return error_info["count"] > _max_errors_per_window


def error_response(status_code: int, error: str, error_type: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": status_code,
            "status": "error",
            "error": error,
            "details": {
                "error_type": error_type,
                "message": message
            }
        }
    )


async def conversation_not_found_handler(request: Request, exc: ConversationNotFoundError) -> JSONResponse:
    """Missing and foreign conversations look the same to the caller"""
    return error_response(404, "Conversation not found", "not_found", "The requested conversation does not exist.")


async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    if not is_error_rate_limited("configuration"):
        logger.error(f"Configuration error in {request.url.path}: {exc}")

    return error_response(
        500,
        "Service is not configured",
        "configuration_error",
        "A required service credential is missing. The incident has been logged."
    )


async def graph_query_exception_handler(request: Request, exc: GraphQueryError) -> JSONResponse:
    if not is_error_rate_limited("graph_query"):
        logger.error(f"Graph query error in {request.url.path}: {exc}")

    return error_response(
        502,
        "Graph database query failed",
        "graph_query_error",
        "The knowledge graph could not be queried. Please try again later."
    )


async def generation_exception_handler(request: Request, exc: GenerationError) -> JSONResponse:
    if not is_error_rate_limited("generation"):
        logger.error(f"Generation error in {request.url.path}: {exc}")

    return error_response(
        502,
        "Text generation failed",
        "generation_error",
        "The language model did not respond. Please try again later."
    )


async def mongodb_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle MongoDB connection errors gracefully"""
    error_type = type(exc).__name__

    if not is_error_rate_limited(f"mongodb_{error_type}"):
        logger.error(f"MongoDB error in {request.url.path}: {exc}")

    return error_response(
        500,
        "Database connection temporarily unavailable",
        "database_connection_error",
        "The service is experiencing database connectivity issues. Please try again later."
    )


async def neo4j_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle Neo4j connection errors gracefully"""
    error_type = type(exc).__name__

    if not is_error_rate_limited(f"neo4j_{error_type}"):
        logger.error(f"Neo4j error in {request.url.path}: {exc}")

    return error_response(
        500,
        "Graph database temporarily unavailable",
        "database_connection_error",
        "The service is experiencing graph database connectivity issues. Please try again later."
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""

    # Pipeline exceptions
    app.add_exception_handler(ConversationNotFoundError, conversation_not_found_handler)
    app.add_exception_handler(ConfigurationError, configuration_exception_handler)
    app.add_exception_handler(GraphQueryError, graph_query_exception_handler)
    app.add_exception_handler(GenerationError, generation_exception_handler)

    # MongoDB exceptions
    app.add_exception_handler(AutoReconnect, mongodb_exception_handler)
    app.add_exception_handler(ServerSelectionTimeoutError, mongodb_exception_handler)
    app.add_exception_handler(ConnectionFailure, mongodb_exception_handler)
    app.add_exception_handler(OperationFailure, mongodb_exception_handler)

    # Neo4j exceptions
    app.add_exception_handler(ServiceUnavailable, neo4j_exception_handler)
    app.add_exception_handler(AuthError, neo4j_exception_handler)
    app.add_exception_handler(TransientError, neo4j_exception_handler)

    logger.info("Exception handlers registered successfully")

    # Catch-all for any unhandled exceptions to avoid server crashes
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        error_type = type(exc).__name__
        if not is_error_rate_limited(f"general_{error_type}"):
            logger.error(f"Unhandled error in {request.url.path}: {exc}", exc_info=True)
        return error_response(
            500,
            "Internal server error",
            error_type,
            "An unexpected error occurred. The incident has been logged."
        )

    # Register the catch-all handler last so more specific handlers win
    app.add_exception_handler(Exception, general_exception_handler)
