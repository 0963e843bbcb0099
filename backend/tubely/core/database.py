"""
Tubely MongoDB Database Client Module

Async MongoDB connection management for the video metadata store using Motor:
- Connection pooling with configurable pool size
- Retry with exponential backoff while connecting
- Health checks using the MongoDB ping command
- Accessor and indexes for the ``videos`` collection
- Startup/shutdown lifecycle helpers for the FastAPI lifespan
"""

import asyncio
import logging

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from tubely.config import Settings, get_settings


# Configure module logger for structured logging
logger = logging.getLogger(__name__)

VIDEOS_COLLECTION = "videos"

CONNECT_MAX_RETRIES = 3
CONNECT_INITIAL_DELAY_SECONDS = 1.0


class DatabaseClient:
    """
    Async MongoDB client wrapper with connection pooling and lifecycle management.

    Example usage:
        ```python
        db_client = DatabaseClient(get_settings())
        await db_client.connect()
        videos = db_client.get_videos_collection()
        await db_client.close()
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._mongodb_uri = settings.mongodb_uri
        self._db_name = settings.mongodb_db_name
        self._min_pool_size = settings.mongodb_min_pool_size
        self._max_pool_size = settings.mongodb_max_pool_size
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None

        logger.info(
            "DatabaseClient initialized with pool size %s-%s for database: %s",
            self._min_pool_size,
            self._max_pool_size,
            self._db_name,
        )

    async def connect(self) -> bool:
        """
        Establish the MongoDB connection, retrying with exponential backoff.

        Returns:
            bool: True if connection successful, False after all retries failed.
        """
        retry_delay = CONNECT_INITIAL_DELAY_SECONDS

        for attempt in range(1, CONNECT_MAX_RETRIES + 1):
            try:
                logger.info(
                    "Attempting MongoDB connection (attempt %s/%s) to %s...",
                    attempt,
                    CONNECT_MAX_RETRIES,
                    self._db_name,
                )

                self._client = AsyncIOMotorClient(
                    self._mongodb_uri,
                    minPoolSize=self._min_pool_size,
                    maxPoolSize=self._max_pool_size,
                    serverSelectionTimeoutMS=5000,
                    uuidRepresentation="standard",
                )
                self._database = self._client[self._db_name]

                # Verify connection by running ping command
                await self._client.admin.command("ping")

                logger.info("Successfully connected to MongoDB database: %s", self._db_name)
                return True

            except (ServerSelectionTimeoutError, ConnectionFailure):
                logger.exception(
                    "MongoDB connection failure (attempt %s/%s)", attempt, CONNECT_MAX_RETRIES
                )
                if attempt < CONNECT_MAX_RETRIES:
                    logger.warning("Retrying in %s seconds...", retry_delay)
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2  # Exponential backoff

        logger.error(
            "Failed to connect to MongoDB after %s attempts. "
            "Check connection URI and server availability.",
            CONNECT_MAX_RETRIES,
        )
        return False

    async def close(self) -> None:
        """Close the Motor client. Safe to call when not connected."""
        if self._client is None:
            logger.warning("MongoDB close called but no active connection exists")
            return

        self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed for database: %s", self._db_name)

    def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get the database instance for direct operations.

        Raises:
            RuntimeError: If not connected to MongoDB.
        """
        if self._database is None:
            raise RuntimeError(
                "MongoDB database not available. Call connect() first or check connection status."
            )
        return self._database

    def get_videos_collection(self) -> AsyncIOMotorCollection:
        """
        Get the videos collection holding video metadata records.

        Documents carry the video id as a string ``_id``, the owner's
        ``user_id``, title/description, optional thumbnail and video URLs,
        timestamps and the optimistic-concurrency ``version``.
        """
        return self.get_database()[VIDEOS_COLLECTION]

    async def create_indexes(self) -> None:
        """Create indexes used by the per-owner listing."""
        videos = self.get_videos_collection()
        try:
            await videos.create_index([("user_id", 1), ("created_at", -1)])
        except PyMongoError:
            logger.exception("Error creating MongoDB indexes")
            raise
        logger.info("Created indexes on %s collection", VIDEOS_COLLECTION)


# Container class for database client singleton to avoid global statements
class _DatabaseClientContainer:
    """Container for database client singleton to avoid global statements."""

    client: DatabaseClient | None = None


_container = _DatabaseClientContainer()


async def init_db(settings: Settings | None = None) -> DatabaseClient:
    """
    Initialize the global database client singleton, connect and create indexes.

    Raises:
        RuntimeError: If connection to MongoDB fails after all retries.
    """
    if _container.client is not None:
        logger.warning("Database client already initialized, returning existing instance")
        return _container.client

    client = DatabaseClient(settings or get_settings())

    if not await client.connect():
        raise RuntimeError(
            "Failed to establish MongoDB connection. "
            "Check mongodb_uri configuration and server availability."
        )

    await client.create_indexes()

    _container.client = client
    logger.info("MongoDB database client initialization complete")
    return client


async def close_db() -> None:
    """Close the global database client connection."""
    if _container.client is None:
        logger.warning("close_db called but no database client exists")
        return

    await _container.client.close()
    _container.client = None


def get_db_client() -> DatabaseClient:
    """
    Get the global database client singleton instance.

    Raises:
        RuntimeError: If database client has not been initialized.
    """
    if _container.client is None:
        raise RuntimeError(
            "Database client not initialized. Call init_db() first during application startup."
        )
    return _container.client
