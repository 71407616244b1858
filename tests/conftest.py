"""Central test fixtures."""

from collections.abc import AsyncIterator, Callable

import httpx
import pytest
import pytest_asyncio

from sluice.context import FunctionContext, clear_context
from sluice.delivery import HttpClientPool
from sluice.domain import ConnectionConfig, ConnectionOptions
from sluice.recognition import InMemoryAnonymousEventsStore
from sluice.settings import PipelineSettings
from tests.fixtures.sinks import RecordingSink


@pytest.fixture(autouse=True)
def _reset_context():
    """Every test starts without an execution context."""
    clear_context()
    yield
    clear_context()


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(bulker_url="http://bulker:3042", bulker_auth_key="bulker-key")


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_pool(settings: PipelineSettings) -> Callable[[RecordingSink], HttpClientPool]:
    def factory(handler: RecordingSink) -> HttpClientPool:
        return HttpClientPool(settings, transport=httpx.MockTransport(handler))

    return factory


@pytest_asyncio.fixture
async def http_pool(make_pool, sink: RecordingSink) -> AsyncIterator[HttpClientPool]:
    """Pool whose requests are answered by ``sink``."""
    async with make_pool(sink) as pool:
        yield pool


@pytest.fixture
def connection() -> ConnectionConfig:
    """A connection configured for primary-key deduplication."""
    return ConnectionConfig(
        id="conn-1",
        workspace_id="ws-1",
        stream_id="stream-1",
        destination_id="dst-1",
        destination_type="clickhouse",
        options=ConnectionOptions(deduplicate=True, primary_key="message_id"),
    )


@pytest.fixture
def anonymous_events_store() -> InMemoryAnonymousEventsStore:
    return InMemoryAnonymousEventsStore()


@pytest.fixture
def function_context(
    connection: ConnectionConfig, anonymous_events_store: InMemoryAnonymousEventsStore
) -> FunctionContext:
    return FunctionContext(connection=connection, anonymous_events_store=anonymous_events_store)
