"""Tests for the segment and segment-single-table layouts."""

import copy

import pytest

from sluice.domain import AnalyticsEvent, LayoutConfig, TableNameParameter, UserRecognitionParameter
from sluice.layouts import TransformedRow, iter_rows, plural, transform

SEGMENT = LayoutConfig(data_layout="segment")
SINGLE_TABLE = LayoutConfig(data_layout="segment-single-table")


@pytest.fixture
def signed_up() -> dict:
    return {
        "type": "track",
        "event": "Signed Up",
        "messageId": "m1",
        "anonymousId": "a1",
        "properties": {"plan": "pro", "trialDays": 14},
        "context": {"ip": "1.2.3.4"},
    }


@pytest.fixture
def page() -> dict:
    return {
        "type": "page",
        "messageId": "m1",
        "anonymousId": "a1",
        "properties": {"url": "http://x", "title": "T"},
        "context": {"ip": "1.2.3.4", "traits": {"email": "e@x.com", "groupId": "g1"}},
    }


@pytest.fixture
def identify() -> dict:
    return {
        "type": "identify",
        "messageId": "m3",
        "userId": "u1",
        "traits": {"email": "e@x.com", "firstName": "Ann"},
        "context": {"locale": "en"},
    }


def test_named_track_event_yields_two_rows(signed_up):
    rows = transform(signed_up, SEGMENT)

    assert isinstance(rows, list)
    assert [row.table for row in rows] == ["tracks", "Signed Up"]

    tracks, named = rows
    assert "properties" not in tracks.event
    assert tracks.event["event"] == "Signed Up"
    assert tracks.event["message_id"] == "m1"

    assert "properties" not in named.event
    assert named.event["plan"] == "pro"
    assert named.event["trial_days"] == 14
    assert named.event["context"] == {"ip": "1.2.3.4"}


def test_unnamed_track_event_yields_tracks_row():
    row = transform({"type": "track", "messageId": "m1", "properties": {"a": 1}}, SEGMENT)

    assert isinstance(row, TransformedRow)
    assert row.table == "tracks"
    assert row.event["a"] == 1


@pytest.mark.parametrize(
    ("event_type", "table"),
    [("identify", "identifies"), ("page", "pages"), ("group", "groups"), ("screen", "screen")],
)
def test_multi_table_names(event_type, table):
    row = transform({"type": event_type, "messageId": "m1"}, SEGMENT)

    assert row.table == table
    assert plural(event_type) == table


def test_multi_table_identify_flattens_traits(identify):
    row = transform(identify, SEGMENT)

    assert row.table == "identifies"
    assert row.event["email"] == "e@x.com"
    assert row.event["first_name"] == "Ann"
    assert row.event["user_id"] == "u1"
    assert "traits" not in row.event
    assert "type" not in row.event


def test_single_table_page(page):
    row = transform(page, SINGLE_TABLE)

    assert row.table == "events"
    assert row.event == {
        "context": {"ip": "1.2.3.4", "traits": {"email": "e@x.com"}, "group_id": "g1"},
        "url": "http://x",
        "title": "T",
        "message_id": "m1",
        "anonymous_id": "a1",
        "type": "page",
    }


def test_single_table_identify_nests_traits(identify):
    row = transform(identify, SINGLE_TABLE)

    assert row.table == "events"
    assert row.event == {
        "context": {"traits": {"email": "e@x.com", "first_name": "Ann"}, "locale": "en"},
        "message_id": "m3",
        "user_id": "u1",
        "type": "identify",
    }


def test_single_table_group_moves_traits_under_context():
    event = {"type": "group", "messageId": "m1", "groupId": "g1", "traits": {"name": "Acme"}}

    row = transform(event, SINGLE_TABLE)

    assert row.event["context"]["group"] == {"name": "Acme"}
    assert row.event["context"]["group_id"] == "g1"
    assert "group_id" not in row.event
    assert row.event["type"] == "group"


def test_single_table_track_moves_property_traits(signed_up):
    signed_up["properties"]["traits"] = {"plan": "pro"}

    row = transform(signed_up, SINGLE_TABLE)

    assert row.event["context"]["traits"] == {"plan": "pro"}
    assert "traits" not in row.event
    assert row.event["event"] == "Signed Up"
    assert row.event["type"] == "track"


def test_default_layout_is_single_table(page):
    assert transform(page).table == "events"


def test_keep_original_names(page):
    row = transform(page, LayoutConfig(data_layout="segment", keep_original_names=True))

    assert row.event["messageId"] == "m1"
    assert row.event["anonymousId"] == "a1"
    assert "message_id" not in row.event


def test_table_name_override(signed_up):
    signed_up[TableNameParameter] = "custom"

    for config in (SEGMENT, SINGLE_TABLE):
        row = transform(signed_up, config)
        assert isinstance(row, TransformedRow)
        assert row.table == "custom"
        assert row.event["type"] == "track"
        assert TableNameParameter not in row.event


def test_internal_parameters_are_not_written(page):
    page[UserRecognitionParameter] = "m0"

    row = transform(page, SINGLE_TABLE)

    assert all("jitsu" not in key.lower() for key in row.event)


def test_transform_is_pure_and_repeatable(signed_up):
    original = copy.deepcopy(signed_up)

    first = transform(signed_up, SEGMENT)
    second = transform(signed_up, SEGMENT)

    assert signed_up == original
    assert first == second
    first[1].event["plan"] = "changed"
    assert signed_up["properties"]["plan"] == "pro"


def test_transform_accepts_model():
    event = AnalyticsEvent(type="page", messageId="m1", anonymousId="a1")

    row = transform(event, SINGLE_TABLE)

    assert row.event["message_id"] == "m1"
    assert row.event["anonymous_id"] == "a1"


def test_iter_rows_normalizes_results(signed_up):
    assert len(iter_rows(transform(signed_up, SEGMENT))) == 2
    assert len(iter_rows(transform(signed_up, SINGLE_TABLE))) == 1