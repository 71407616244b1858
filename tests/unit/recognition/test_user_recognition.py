"""Tests for the identity recognition engine."""

import logging
from unittest.mock import AsyncMock

import pytest

from sluice.context import FunctionContext
from sluice.domain import (
    AnalyticsEvent,
    ConnectionConfig,
    ConnectionOptions,
    StoreError,
    UserRecognitionParameter,
)
from sluice.recognition import (
    AnonymousEventsStore,
    UserRecognition,
    collection_name,
    identifying_traits,
    merge_identity,
    recognize,
)


def page(message_id: str, anonymous_id: str = "a1", **fields) -> dict:
    return {"type": "page", "anonymousId": anonymous_id, "messageId": message_id, **fields}


def identify(message_id: str, anonymous_id: str = "a1", **fields) -> dict:
    return {"type": "identify", "anonymousId": anonymous_id, "messageId": message_id, **fields}


@pytest.mark.asyncio
async def test_anonymous_events_are_resolved_on_identify(function_context, anonymous_events_store):
    assert await recognize(page("1"), function_context) is None
    assert await recognize(page("2"), function_context) is None
    assert anonymous_events_store.size("UR_conn-1", "a1") == 2

    result = await recognize(
        identify("3", userId="u1", traits={"email": "e@x.com"}), function_context
    )

    assert isinstance(result, list)
    assert [e["messageId"] for e in result] == ["3", "1", "2"]
    assert result[0]["type"] == "identify"
    for recognized in result[1:]:
        assert recognized["type"] == "page"
        assert recognized["userId"] == "u1"
        assert recognized["context"]["traits"] == {"email": "e@x.com"}
        assert recognized[UserRecognitionParameter] == "3"
    assert anonymous_events_store.size("UR_conn-1", "a1") == 0


@pytest.mark.asyncio
async def test_identify_without_buffered_events_passes_through(function_context):
    event = identify("3", userId="u1")

    assert await recognize(event, function_context) == event


@pytest.mark.asyncio
async def test_second_identify_finds_nothing(function_context):
    await recognize(page("1"), function_context)
    await recognize(identify("2", userId="u1"), function_context)

    assert await recognize(identify("3", userId="u1"), function_context) == identify(
        "3", userId="u1"
    )


@pytest.mark.asyncio
async def test_identify_without_identity_is_dropped(function_context, anonymous_events_store):
    await recognize(page("1"), function_context)

    assert await recognize(identify("2", traits={"name": "Ann"}), function_context) is None
    assert anonymous_events_store.size("UR_conn-1", "a1") == 1


@pytest.mark.asyncio
async def test_identified_page_passes_through(function_context, anonymous_events_store):
    event = page("1", userId="u1")

    assert await recognize(event, function_context) == event
    assert anonymous_events_store.size("UR_conn-1", "a1") == 0


@pytest.mark.asyncio
async def test_other_event_types_pass_through(function_context):
    event = {"type": "group", "anonymousId": "a1", "messageId": "1", "groupId": "g1"}

    assert await recognize(event, function_context) == event


@pytest.mark.asyncio
async def test_missing_anonymous_id_passes_through(function_context):
    event = {"type": "page", "messageId": "1"}

    assert await recognize(event, function_context) == event


@pytest.mark.asyncio
async def test_requires_deduplication(anonymous_events_store):
    context = FunctionContext(
        connection=ConnectionConfig(id="conn-1", destination_type="clickhouse"),
        anonymous_events_store=anonymous_events_store,
    )
    event = page("1")

    assert await recognize(event, context) == event
    assert anonymous_events_store.size("UR_conn-1", "a1") == 0


@pytest.mark.asyncio
async def test_profiles_destination_does_not_require_deduplication(anonymous_events_store):
    context = FunctionContext(
        connection=ConnectionConfig(id="conn-1", destination_type="profiles"),
        anonymous_events_store=anonymous_events_store,
    )

    assert await recognize(page("1"), context) is None
    assert anonymous_events_store.size("UR_conn-1", "a1") == 1


@pytest.mark.asyncio
async def test_identifying_traits(anonymous_events_store):
    context = FunctionContext(
        connection=ConnectionConfig(
            id="conn-1",
            options=ConnectionOptions(
                deduplicate=True,
                primary_key="message_id",
                functions_env={"IDENTIFYING_TRAITS": "email, phone"},
            ),
        ),
        anonymous_events_store=anonymous_events_store,
    )
    known = page("0", context={"traits": {"phone": "555"}})

    assert await recognize(known, context) == known
    assert await recognize(page("1"), context) is None

    result = await recognize(identify("2", traits={"email": "e@x.com"}), context)

    assert [e["messageId"] for e in result] == ["2", "1"]
    assert result[1]["userId"] is None
    assert result[1]["context"]["traits"] == {"email": "e@x.com"}


@pytest.mark.asyncio
async def test_keys_are_isolated(function_context, anonymous_events_store):
    await recognize(page("1", anonymous_id="a1"), function_context)
    await recognize(page("2", anonymous_id="a2"), function_context)

    result = await recognize(identify("3", anonymous_id="a1", userId="u1"), function_context)

    assert [e["messageId"] for e in result] == ["3", "1"]
    assert anonymous_events_store.size("UR_conn-1", "a2") == 1


@pytest.mark.asyncio
async def test_accepts_model(function_context):
    await recognize(AnalyticsEvent(type="page", anonymousId="a1", messageId="1"), function_context)

    result = await recognize(
        AnalyticsEvent(type="identify", anonymousId="a1", userId="u1", messageId="2"),
        function_context,
    )

    assert [e["messageId"] for e in result] == ["2", "1"]


@pytest.mark.asyncio
async def test_add_failure_is_logged_not_raised(function_context, caplog):
    store = AsyncMock(spec=AnonymousEventsStore)
    store.add_event.side_effect = StoreError("down")

    result = await UserRecognition(store)(page("1"), function_context)

    assert result is None
    assert "Failed to insert anonymous event to User Recognition collection: down" in caplog.text


@pytest.mark.asyncio
async def test_evict_failure_propagates(function_context):
    store = AsyncMock(spec=AnonymousEventsStore)
    store.evict_events.side_effect = StoreError("down")

    with pytest.raises(StoreError):
        await UserRecognition(store)(identify("1", userId="u1"), function_context)


@pytest.mark.asyncio
async def test_buffers_with_lookback_window(function_context):
    store = AsyncMock(spec=AnonymousEventsStore)

    await UserRecognition(store, window_days=7)(page("1"), function_context)

    store.add_event.assert_awaited_once_with("UR_conn-1", "a1", page("1"), 7)


@pytest.mark.asyncio
async def test_recognize_requires_store(connection):
    with pytest.raises(ValueError):
        await recognize(page("1"), FunctionContext(connection=connection))


def test_merge_identity_keeps_existing_context_traits():
    event = page("1", context={"traits": {"plan": "pro", "email": "old@x.com"}})

    merged = merge_identity(event, identify("2", userId="u1", traits={"email": "e@x.com"}))

    assert merged["userId"] == "u1"
    assert merged["context"]["traits"] == {"plan": "pro", "email": "e@x.com"}
    assert merged[UserRecognitionParameter] == "2"


def test_collection_name():
    assert collection_name("conn-1") == "UR_conn-1"


def test_identifying_traits_parsing():
    assert identifying_traits({"IDENTIFYING_TRAITS": " email,,phone "}) == ["email", "phone"]
    assert identifying_traits({}) == []


@pytest.mark.asyncio
async def test_resolution_logs_recognized_count(function_context, caplog):
    await recognize(page("1"), function_context)
    await recognize(page("2"), function_context)

    with caplog.at_level(logging.INFO, logger="sluice.recognition.engine"):
        await recognize(identify("3", userId="u1"), function_context)

    [record] = caplog.records
    assert record.getMessage() == "2 events for anonymous id were updated with identified fields"
    assert record.message_id == "3"
