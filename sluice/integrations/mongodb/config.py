"""MongoDB configuration using pydantic-settings."""

from functools import cached_property
from typing import Any

from pydantic_settings import BaseSettings
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.asynchronous.mongo_client import AsyncMongoClient


class MongoConfiguration(BaseSettings):
    """Configuration and factory for MongoDB resources.

    All settings can be configured via environment variables with the
    SLUICE_MONGO_ prefix. For example:
    - SLUICE_MONGO_URI=mongodb://localhost:27017
    - SLUICE_MONGO_DATABASE=persistent_store
    - SLUICE_MONGO_PROFILES_DATABASE=profiles

    The configuration also acts as a factory, providing lazy-initialized
    properties for the MongoDB client and databases.

    Attributes:
        uri: MongoDB connection URI.
        database: Database holding the anonymous events buffers.
        profiles_database: Database holding the profile collections.
        timeout_ms: Server selection, connect and socket timeout.

    Example:
        >>> config = MongoConfiguration()
        >>> store = MongoAnonymousEventsStore(config)
        >>> ...
        >>> await config.on_shutdown()
    """

    uri: str = "mongodb://localhost:27017"
    database: str = "persistent_store"
    profiles_database: str = "profiles"
    timeout_ms: int = 1000

    model_config = {"env_prefix": "SLUICE_MONGO_"}

    @cached_property
    def client(self) -> AsyncMongoClient[dict[str, Any]]:
        """Get the MongoDB async client.

        The client is lazily created and cached for reuse.
        """
        return AsyncMongoClient(
            self.uri,
            serverSelectionTimeoutMS=self.timeout_ms,
            connectTimeoutMS=self.timeout_ms,
            socketTimeoutMS=self.timeout_ms,
            tz_aware=True,
        )

    @cached_property
    def db(self) -> AsyncDatabase[dict[str, Any]]:
        """Get the database of the anonymous events buffers."""
        return self.client[self.database]

    @cached_property
    def profiles_db(self) -> AsyncDatabase[dict[str, Any]]:
        """Get the database of the profile collections."""
        return self.client[self.profiles_database]

    async def on_startup(self) -> None:
        """Called when the application starts.

        No-op for MongoDB - connections are established lazily.
        """
        pass

    async def on_shutdown(self) -> None:
        """Called when the application shuts down.

        Closes the MongoDB client connection if it was created.
        """
        if "client" in self.__dict__:
            await self.client.close()
            del self.__dict__["client"]
            self.__dict__.pop("db", None)
            self.__dict__.pop("profiles_db", None)
