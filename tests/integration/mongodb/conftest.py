"""Pytest fixtures for MongoDB integration tests."""

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from sluice.integrations.mongodb import MongoConfiguration

# Assumes a MongoDB container is running locally on port 27017
LOCAL_MONGO_URI = "mongodb://localhost:27017"


@asynccontextmanager
async def create_config(
    request: pytest.FixtureRequest, prefix: str = "test"
) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration with cleanup."""
    db_name = f"{prefix}_{request.node.name}"[:60]
    config = MongoConfiguration(
        uri=LOCAL_MONGO_URI,
        database=db_name,
        profiles_database=f"{db_name}_p",
    )
    await config.client.drop_database(config.database)
    await config.client.drop_database(config.profiles_database)
    try:
        yield config
    finally:
        await config.on_shutdown()


@pytest_asyncio.fixture
async def mongo_config(request: pytest.FixtureRequest) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration pointing to local MongoDB."""
    async with create_config(request) as config:
        yield config
