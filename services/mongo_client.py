from typing import Optional

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from services.exceptions import ConfigurationError
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)


def create_mongo_client(mongo_uri: Optional[str]) -> AsyncMongoClient:
    """Create the shared async MongoDB client for MONGO_URI.

    The client connects lazily; a wrong URI surfaces as a pymongo
    connection error on the first operation, not here.
    """
    if not mongo_uri:
        raise ConfigurationError("MONGO_URI environment variable not configured")

    client_options = {
        'serverSelectionTimeoutMS': 10000,
        'connectTimeoutMS': 10000,
        'socketTimeoutMS': 30000,
        'retryWrites': True,
        'retryReads': True,
        'heartbeatFrequencyMS': 30000,  # 30 seconds (default is 10s)
        'tz_aware': True,
    }

    try:
        return AsyncMongoClient(mongo_uri, **client_options)
    except Exception as e:
        logger.error(f"Failed to create MongoDB client: {e}")
        raise


def get_mongo_db(client: AsyncMongoClient, db_name: Optional[str] = None) -> AsyncDatabase:
    """Return MONGO_DB_NAME if set, else the database named in the URI"""
    return client.get_database(db_name) if db_name else client.get_default_database()
