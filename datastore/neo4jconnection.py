import asyncio
from typing import Any, Dict, List, Optional

from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from services.exceptions import ConfigurationError, GraphQueryError
from services.logger_singleton import LoggerSingleton

# Create a logger instance for this module
logger = LoggerSingleton.get_logger(__name__)


class AsyncNeo4jConnection:
    """
    Graph store adapter over the async Neo4j driver.

    The driver is created lazily on first query, so a missing URI or
    credential surfaces as a ConfigurationError at first use rather than at
    startup. One instance is built per application lifespan and injected
    into the context builder.
    """

    def __init__(self, uri: Optional[str] = None, user: Optional[str] = None,
                 pwd: Optional[str] = None, database: Optional[str] = None):
        self.__uri = uri
        self.__user = user
        self.__pwd = pwd
        self.database = database
        self._driver: Optional[AsyncDriver] = None
        self._lock = asyncio.Lock()

    async def get_driver(self) -> AsyncDriver:
        if self._driver is not None:
            return self._driver

        async with self._lock:
            if self._driver is not None:
                return self._driver

            if not self.__uri or not self.__user or not self.__pwd:
                raise ConfigurationError("Neo4j environment variables not configured (NEO4J_URI, NEO4J_USERNAME, NEO4J_PASSWORD)")

            connection_args = {
                "max_connection_pool_size": 50,
                "connection_acquisition_timeout": 30,
                "max_connection_lifetime": 180,    # 3 minutes
                "keep_alive": True,
            }

            logger.info("Creating Neo4j driver...")
            self._driver = AsyncGraphDatabase.driver(
                self.__uri,
                auth=(self.__user, self.__pwd),
                **connection_args
            )
            return self._driver

    async def execute_query(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a read query and return its records as plain dicts"""
        driver = await self.get_driver()
        try:
            async with driver.session(database=self.database) as session:
                result = await session.run(query, params or {})
                return await result.data()
        except (Neo4jError, DriverError) as e:
            logger.error(f"Neo4j query failed: {e}")
            raise GraphQueryError(f"Graph query failed: {e}") from e

    async def health_check(self) -> bool:
        try:
            records = await self.execute_query("RETURN 1 AS ok")
        except (GraphQueryError, ConfigurationError) as e:
            logger.warning(f"Neo4j health check failed: {e}")
            return False
        return bool(records) and records[0].get("ok") == 1

    async def close(self):
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Neo4j driver closed")
