"""Integration tests for MongoProfileStore and the profile builder."""

from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from sluice.context import FunctionContext
from sluice.delivery import HttpClientPool
from sluice.domain import ConnectionConfig, ProfilesConfig, utc_now
from sluice.integrations.mongodb import MongoConfiguration, MongoProfileStore
from sluice.profiles import PROFILE_ID_COLUMN, PROFILE_ID_HASH_COLUMN, ProfileBuilder, int32_hash
from sluice.settings import PipelineSettings
from tests.fixtures.sinks import RecordingSink

RAW = "profiles-raw-ws-1-pb1"
TRAITS = "profiles-traits-ws-1-pb1"


@pytest_asyncio.fixture
async def store(mongo_config: MongoConfiguration):
    """Create a MongoProfileStore for testing."""
    return MongoProfileStore(mongo_config)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_ensure_collection_creates_ttl_collection(
    store: MongoProfileStore, mongo_config: MongoConfiguration
):
    await store.ensure_collection(TRAITS, 30, [PROFILE_ID_COLUMN], unique=True)
    # Second call finds the collection and does nothing
    await store.ensure_collection(TRAITS, 30, [PROFILE_ID_COLUMN], unique=True)

    [info] = await (
        await mongo_config.profiles_db.list_collections(filter={"name": TRAITS})
    ).to_list()
    assert info["options"]["expireAfterSeconds"] == 30 * 86400
    assert info["options"]["clusteredIndex"]["key"] == {"_id": 1}

    indexes = await mongo_config.profiles_db[TRAITS].index_information()
    unique = [spec for spec in indexes.values() if spec["key"] == [(PROFILE_ID_COLUMN, 1)]]
    assert unique[0]["unique"] is True


@pytest.mark.integration
@pytest.mark.asyncio
async def test_merge_profile_upserts_and_merges_traits(store: MongoProfileStore):
    await store.ensure_collection(TRAITS, 30, [PROFILE_ID_COLUMN], unique=True)
    first = utc_now()
    later = first + timedelta(minutes=5)

    created = await store.merge_profile(
        TRAITS,
        "u1",
        {"userId": "u1", "anonymousId": "a1", "traits": {"email": "e@x.com", "plan": "free"}},
        first,
    )
    merged = await store.merge_profile(
        TRAITS,
        "u1",
        {"userId": "u1", "anonymousId": "a2", "traits": {"plan": "pro"}},
        later,
    )

    assert "_id" not in created
    assert merged["traits"] == {"email": "e@x.com", "plan": "pro"}
    assert merged["anonymousId"] == "a1"
    assert merged["createdAt"] == created["createdAt"]
    assert merged["updatedAt"] > merged["createdAt"]
    assert await store.get_profile(TRAITS, "u1") == merged


@pytest.mark.integration
@pytest.mark.asyncio
async def test_merge_profile_stores_dollar_keys_as_data(store: MongoProfileStore):
    doc = await store.merge_profile(
        TRAITS, "u1", {"userId": "u1", "traits": {"note": "$traits"}}, utc_now()
    )

    assert doc["traits"] == {"note": "$traits"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_insert_and_find_events(store: MongoProfileStore):
    await store.ensure_collection(RAW, 30, [PROFILE_ID_HASH_COLUMN, PROFILE_ID_COLUMN, "type"])
    for profile_id, n in [("u1", 1), ("u2", 2), ("u1", 3)]:
        document = {
            PROFILE_ID_HASH_COLUMN: int32_hash(profile_id),
            PROFILE_ID_COLUMN: profile_id,
            "messageId": str(n),
        }
        assert await store.insert_event(RAW, document)
        assert "_id" not in document

    events = await store.find_events(RAW, "u1", int32_hash("u1"))

    assert [e["messageId"] for e in events] == ["1", "3"]
    assert await store.get_profile(TRAITS, "nobody") is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_profile_builder_end_to_end(store: MongoProfileStore):
    """Events are stored, traits merged and the bulk loader notified."""
    sink = RecordingSink()
    settings = PipelineSettings(bulker_url="http://bulker:3042", bulker_auth_key="key")
    ctx = FunctionContext(connection=ConnectionConfig(id="conn-1", workspace_id="ws-1"))

    async with HttpClientPool(settings, transport=httpx.MockTransport(sink)) as pool:
        builder = ProfileBuilder(
            ProfilesConfig(profileBuilderId="pb1", profileWindowDays=30), store, pool, settings
        )
        await builder(
            {"type": "identify", "userId": "u1", "messageId": "1", "traits": {"plan": "pro"}},
            ctx,
        )
        await builder({"type": "track", "userId": "u1", "messageId": "2", "event": "Buy"}, ctx)

        snapshot = await builder.load("u1", "ws-1")

    assert snapshot.user["traits"] == {"plan": "pro"}
    assert [e["messageId"] for e in snapshot.events] == ["1", "2"]
    assert [r.url.path for r in sink.requests] == ["/profiles/pb1/0", "/profiles/pb1/0"]
