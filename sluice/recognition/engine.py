"""Identity recognition: retroactively attach identity to anonymous events.

Per ``(connection, anonymousId)`` the engine moves through three states:

- unseen → buffered: an anonymous ``page``/``track``/``screen`` event with no
  user id and no identifying trait is added to the store;
- buffered → resolved: an ``identify`` event carrying a user id or an
  identifying trait evicts the buffered events, stamps them with the new
  identity and re-emits them after the identify event;
- buffered → expired: handled by the store's lookback window.

Re-emitted events keep their original ``messageId``, so the destination
must deduplicate by primary key. Without that configuration the engine
degrades to a pass-through.
"""

import json
import logging
from collections.abc import Mapping, Sequence

from ..context import FunctionContext, log_extra
from ..domain import (
    AnalyticsEvent,
    EventPayload,
    StoreError,
    UserRecognitionParameter,
    as_payload,
)
from ..transfer import transfer
from .store import AnonymousEventsStore

LOGGER = logging.getLogger(__name__)

IDENTIFYING_TRAITS_ENV = "IDENTIFYING_TRAITS"
"""Connection env variable listing identifying trait names (comma-separated)."""

LOOKBACK_WINDOW_DAYS = 30
BUFFERED_EVENT_TYPES = ("page", "track", "screen")
PROFILES_DESTINATION_TYPE = "profiles"

RecognitionResult = EventPayload | list[EventPayload] | None


def collection_name(connection_id: str) -> str:
    """Name of the anonymous events collection of a connection."""
    return f"UR_{connection_id}"


def identifying_traits(functions_env: Mapping[str, str]) -> list[str]:
    """Parse the identifying traits list from connection env variables."""
    raw = functions_env.get(IDENTIFYING_TRAITS_ENV) or ""
    return [t.strip() for t in raw.split(",") if t.strip()]


def _has_any_trait(traits: object, names: Sequence[str]) -> bool:
    if not isinstance(traits, Mapping):
        return False
    return any(traits.get(name) for name in names)


def merge_identity(anonymous_event: EventPayload, identify: EventPayload) -> EventPayload:
    """Stamp a buffered anonymous event with the identity of ``identify``.

    Sets ``userId``, merges the identify traits into ``context.traits`` and
    records the identify event's messageId as a back-reference.
    """
    anonymous_event["userId"] = identify.get("userId")
    context = anonymous_event.get("context")
    if not isinstance(context, dict):
        context = anonymous_event["context"] = {}
    traits = identify.get("traits") or {}
    if not context.get("traits"):
        context["traits"] = dict(traits)
    else:
        transfer(context["traits"], traits)
    anonymous_event[UserRecognitionParameter] = identify.get("messageId")
    return anonymous_event


class UserRecognition:
    """Identity recognition function bound to an anonymous events store.

    Examples:
        >>> store = AnonymousEventsStore.in_memory()
        >>> recognition = UserRecognition(store)
        >>> await recognition({"type": "page", "anonymousId": "a1", "messageId": "1"}, ctx)
        >>> await recognition(
        ...     {"type": "identify", "anonymousId": "a1", "userId": "u1", "messageId": "2"}, ctx
        ... )
        [{'type': 'identify', ...}, {'type': 'page', 'userId': 'u1', ...}]
    """

    def __init__(self, store: AnonymousEventsStore, window_days: int = LOOKBACK_WINDOW_DAYS):
        self.store = store
        self.window_days = window_days

    async def __call__(
        self, event: "AnalyticsEvent | EventPayload", context: FunctionContext
    ) -> RecognitionResult:
        """Buffer, resolve or pass through one event.

        Args:
            event: Incoming event.
            context: Connection configuration.

        Returns:
            - None when an anonymous event was buffered or an identify event
              without identity was dropped;
            - ``[identify, *recognized]`` when buffered events were resolved;
            - the event itself otherwise (pass-through or identify with
              nothing buffered).
        """
        payload = as_payload(event)
        message_id = payload.get("messageId")
        connection = context.connection
        options = connection.options

        if not options.has_deduplication and context.destination_type != PROFILES_DESTINATION_TYPE:
            LOGGER.error(
                "User Recognition requires the connection to be configured with "
                "'deduplicate' and 'primaryKey' options",
                extra=log_extra(message_id=message_id, connection_id=connection.id),
            )
            return payload

        anonymous_id = payload.get("anonymousId")
        if not anonymous_id:
            LOGGER.warning(
                "No anonymous id found",
                extra=log_extra(message_id=message_id, connection_id=connection.id),
            )
            return payload

        traits_names = identifying_traits(options.functions_env)
        collection = collection_name(connection.id)
        event_type = payload.get("type")

        if event_type == "identify":
            identified = bool(payload.get("userId")) or _has_any_trait(
                payload.get("traits"), traits_names
            )
            if not identified:
                LOGGER.debug(
                    "Identify event with not enough identifying information",
                    extra=log_extra(
                        message_id=message_id,
                        connection_id=connection.id,
                        user_id=payload.get("userId"),
                    ),
                )
                return None
            return await self._resolve(collection, anonymous_id, payload)

        if event_type in BUFFERED_EVENT_TYPES:
            identified = bool(payload.get("userId")) or _has_any_trait(
                (payload.get("context") or {}).get("traits"), traits_names
            )
            if identified:
                return payload
            await self._buffer(collection, anonymous_id, payload)
            return None

        LOGGER.debug(
            "Event type is not processed by User Recognition",
            extra=log_extra(message_id=message_id, event_type=event_type),
        )
        return payload

    async def _buffer(self, collection: str, anonymous_id: str, event: EventPayload) -> None:
        message_id = event.get("messageId")
        try:
            await self.store.add_event(collection, anonymous_id, event, self.window_days)
        except StoreError as err:
            LOGGER.error(
                f"Failed to insert anonymous event to User Recognition collection: {err}",
                extra=log_extra(message_id=message_id, anonymous_id=anonymous_id),
            )
            return
        LOGGER.debug(
            "Anonymous event inserted to User Recognition collection",
            extra=log_extra(message_id=message_id, anonymous_id=anonymous_id),
        )

    async def _resolve(
        self, collection: str, anonymous_id: str, identify: EventPayload
    ) -> EventPayload | list[EventPayload]:
        message_id = identify.get("messageId")
        evicted = await self.store.evict_events(collection, anonymous_id)
        identified_fields = json.dumps(
            {"userId": identify.get("userId"), "context": {"traits": identify.get("traits")}},
            default=str,
        )
        if not evicted:
            LOGGER.debug(
                "No events found for anonymous id",
                extra=log_extra(
                    message_id=message_id,
                    anonymous_id=anonymous_id,
                    identified_fields=identified_fields,
                ),
            )
            return identify
        recognized = [merge_identity(e, identify) for e in evicted]
        LOGGER.info(
            f"{len(recognized)} events for anonymous id were updated with identified fields",
            extra=log_extra(
                message_id=message_id,
                anonymous_id=anonymous_id,
                identified_fields=identified_fields,
            ),
        )
        return [identify, *recognized]


async def recognize(
    event: "AnalyticsEvent | EventPayload", context: FunctionContext
) -> RecognitionResult:
    """Run identity recognition with the store carried by ``context``.

    Raises:
        ValueError: If ``context`` carries no anonymous events store.
    """
    if context.anonymous_events_store is None:
        raise ValueError("FunctionContext.anonymous_events_store is required for recognition")
    return await UserRecognition(context.anonymous_events_store)(event, context)
