"""Segment-compatible layouts.

``segment`` writes every event type to its own table (``identifies``,
``pages``, ``tracks``, one table per named track event...).
``segment-single-table`` writes everything to ``events`` with a ``type``
discriminator and keeps identity traits nested under ``context.traits``.
"""

from collections.abc import Callable, Mapping
from typing import Any

from ..domain import INTERNAL_PARAMETERS, EventPayload, LayoutConfig, TableNameParameter
from ..transfer import (
    transfer,
    transfer_as_snake_case,
    transfer_value,
    transfer_value_as_snake_case,
)
from .registry import LayoutResult, TransformedRow, register_layout

Transfer = Callable[..., None]

_PLURALS = {
    "identify": "identifies",
    "page": "pages",
    "track": "tracks",
    "group": "groups",
}


def plural(event_type: str) -> str:
    """Table name for an event type in the multi-table layout."""
    return _PLURALS.get(event_type, event_type)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


class _Builder:
    """Per-event state shared by the type-specific row builders."""

    def __init__(self, event: EventPayload, keep_original_names: bool):
        self.event = event
        self.context = _mapping(event.get("context"))
        self.context_traits = _mapping(self.context.get("traits"))
        self.traits = _mapping(event.get("traits"))
        self.properties = _mapping(event.get("properties"))
        self.transfer: Transfer = transfer if keep_original_names else transfer_as_snake_case
        self.transfer_value: Transfer = (
            transfer_value if keep_original_names else transfer_value_as_snake_case
        )

    def top_level(self, row: dict[str, Any], *exclude: str) -> None:
        self.transfer(row, self.event, [*exclude, *INTERNAL_PARAMETERS])


RowBuilder = Callable[[_Builder, bool], tuple[dict[str, Any], dict[str, Any] | None]]


def _identify(b: _Builder, single_table: bool) -> tuple[dict[str, Any], None]:
    if single_table:
        row: dict[str, Any] = {"context": {"traits": {}}}
        b.transfer(row["context"], b.context, ["groupId", "traits"])
        b.transfer(row["context"]["traits"], b.context_traits, ["groupId"])
        b.transfer(row["context"]["traits"], b.traits, ["groupId"])
        b.transfer_value(
            row["context"],
            "group_id",
            b.context.get("groupId") or b.traits.get("groupId") or b.context_traits.get("groupId"),
        )
        b.transfer(row, b.properties)
        b.top_level(row, "context", "properties", "traits", "type")
    else:
        row = {"context": {}}
        b.transfer(row["context"], b.context, ["traits"])
        b.transfer(row, b.properties)
        b.transfer(row, b.context_traits)
        b.transfer(row, b.traits)
        b.top_level(row, "context", "properties", "traits", "type")
    return row, None


def _group(b: _Builder, single_table: bool) -> tuple[dict[str, Any], None]:
    if single_table:
        row: dict[str, Any] = {"context": {"group": {}}}
        b.transfer(row["context"], b.context)
        b.transfer(row["context"]["group"], b.traits)
        b.transfer_value(row["context"], "group_id", b.event.get("groupId"))
        b.transfer(row, b.properties)
        b.top_level(row, "context", "properties", "traits", "type", "groupId")
    else:
        row = {"context": {}}
        b.transfer(row["context"], b.context, ["traits"])
        b.transfer(row, b.properties)
        b.transfer(row, b.traits)
        b.top_level(row, "context", "properties", "traits", "type")
    return row, None


def _track(b: _Builder, single_table: bool) -> tuple[dict[str, Any], dict[str, Any] | None]:
    if single_table:
        row: dict[str, Any] = {"context": {"traits": {}}}
        b.transfer(row["context"], b.context, ["groupId", "traits"])
        b.transfer(row["context"]["traits"], b.context_traits, ["groupId"])
        b.transfer(row["context"]["traits"], _mapping(b.properties.get("traits")), ["groupId"])
        b.transfer_value(
            row["context"],
            "group_id",
            b.context.get("groupId") or b.context_traits.get("groupId"),
        )
        b.transfer(row, b.properties, ["traits"])
        b.top_level(row, "context", "properties", "type")
        return row, None
    # the named-event table gets the full event, "tracks" everything but properties
    base: dict[str, Any] = {}
    b.top_level(base, "properties", "type")
    row = {}
    b.transfer(row, b.properties)
    b.top_level(row, "properties", "type")
    return row, base


def _other(b: _Builder, single_table: bool) -> tuple[dict[str, Any], None]:
    if single_table:
        row: dict[str, Any] = {"context": {"traits": {}}}
        b.transfer(row["context"], b.context, ["groupId", "traits"])
        b.transfer(row["context"]["traits"], b.context_traits, ["groupId"])
        b.transfer_value(
            row["context"],
            "group_id",
            b.context.get("groupId") or b.context_traits.get("groupId"),
        )
        b.transfer(row, b.properties)
        b.top_level(row, "context", "properties")
    else:
        row = {}
        b.transfer(row, b.properties)
        b.top_level(row, "properties")
    return row, None


_ROW_BUILDERS: dict[str, RowBuilder] = {
    "identify": _identify,
    "group": _group,
    "track": _track,
}


def segment_layout(event: EventPayload, single_table: bool, config: LayoutConfig) -> LayoutResult:
    """Build Segment-style row(s) for one event.

    Args:
        event: The event; may be mutated freely (callers pass a copy).
        single_table: Collapse all types into ``events`` when True.
        config: ``keep_original_names`` disables snake_case key conversion.

    Returns:
        One row, or two rows for a named track event in multi-table mode.
    """
    event_type = event.get("type") or ""
    builder = _Builder(event, config.keep_original_names)
    row, base_track = _ROW_BUILDERS.get(event_type, _other)(builder, single_table)

    table_override = event.get(TableNameParameter)
    if table_override:
        row["type"] = event_type
        return TransformedRow(event=row, table=table_override)
    if single_table:
        row["type"] = event_type
        return TransformedRow(event=row, table="events")
    if event_type == "track" and event.get("event") and base_track is not None:
        return [
            TransformedRow(event=base_track, table="tracks"),
            TransformedRow(event=row, table=event["event"]),
        ]
    return TransformedRow(event=row, table=plural(event_type))


@register_layout("segment")
def segment(event: EventPayload, config: LayoutConfig) -> LayoutResult:
    return segment_layout(event, False, config)


@register_layout("segment-single-table")
def segment_single_table(event: EventPayload, config: LayoutConfig) -> LayoutResult:
    return segment_layout(event, True, config)
