from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

EventPayload = dict[str, Any]
"""An analytics event as a JSON mapping (camelCase keys)."""

EventType = Literal["identify", "group", "track", "page", "screen", "alias"]

TableNameParameter = "JITSU_TABLE_NAME"
"""Event-level override of the destination table name."""

UserRecognitionParameter = "_JITSU_UR_MESSAGE_ID"
"""Back-reference stamped on recognized events: the identify event's messageId."""

ProfileIdParameter = "JITSU_PROFILE_ID"
"""Explicit profile id, takes precedence over ``userId``."""

ProfilePriorityParameter = "__PROFILE_PROCESSING_PRIORITY"
"""Priority passed to the profile bulk-loader trigger."""

INTERNAL_PARAMETERS: tuple[str, ...] = (TableNameParameter, UserRecognitionParameter)
"""Bookkeeping keys that are never written into a destination row."""


def utc_now() -> datetime:
    """Get the current UTC timestamp.

    Returns:
        Current datetime with UTC timezone information
    """
    return datetime.now(tz=timezone.utc)


class AnalyticsEvent(BaseModel):
    """Validated view of an incoming analytics event.

    The pipeline itself works on plain mappings (see ``EventPayload``) because
    events are free-form and carry arbitrary extra keys. This model is used at
    the boundary to validate input and to build events in code; unknown fields
    are preserved and round-trip through ``as_payload``.

    Attributes:
        message_id: Unique id of the logical event; the dedup key downstream.
        type: Event type (identify, group, track, page, screen).
        anonymous_id: Client-assigned anonymous id, if any.
        user_id: Known user id, if any.
        event: Event name for track events.
        traits: Identity attributes.
        properties: Free-form event payload.
        context: Nested context (page, device, geo, clientIds, traits...).

    Examples:
        >>> event = AnalyticsEvent(type="page", anonymousId="a1")
        >>> payload = event.as_payload()
        >>> payload["anonymousId"]
        'a1'
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    message_id: str = Field(default_factory=lambda: str(ULID()), alias="messageId")
    type: EventType
    anonymous_id: str | None = Field(default=None, alias="anonymousId")
    user_id: str | None = Field(default=None, alias="userId")
    group_id: str | None = Field(default=None, alias="groupId")
    event: str | None = None
    traits: dict[str, Any] | None = None
    properties: dict[str, Any] | None = None
    context: dict[str, Any] | None = None
    timestamp: str | None = None
    received_at: str | None = Field(default=None, alias="receivedAt")
    write_key: str | None = Field(default=None, alias="writeKey")

    def as_payload(self) -> EventPayload:
        """Dump to a camelCase mapping, omitting empty fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


def as_payload(event: "AnalyticsEvent | EventPayload") -> EventPayload:
    """Normalize a model or a mapping to a plain event mapping.

    Mappings are returned as-is (not copied).
    """
    if isinstance(event, AnalyticsEvent):
        return event.as_payload()
    return event
