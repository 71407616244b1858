"""Bulk-loader destination: transform events into rows and POST them."""

import copy
import json
import logging
from typing import Any

from ..context import log_extra
from ..domain import (
    AnalyticsEvent,
    BulkerDestinationConfig,
    ConnectionConfig,
    EventPayload,
    PayloadTooLargeError,
    RetryError,
    as_payload,
)
from ..layouts import LayoutRegistry, TransformedRow, default_registry, iter_rows
from ..settings import PipelineSettings
from .client import HttpClientPool, check_response

LOGGER = logging.getLogger(__name__)

FUNCTION_ID = "builtin.destination.bulker"

PAYLOAD_EXCERPT_CHARS = 256


def dumps(row: Any) -> str:
    """Compact JSON serialization used for every request body."""
    return json.dumps(row, separators=(",", ":"), ensure_ascii=False, default=str)


def normalize_ga4(event: EventPayload) -> EventPayload:
    """JSON-encode GA4 session ids in place.

    ``context.clientIds.ga4.sessionIds`` is stored as a string column. Events
    from older clients carry the same data as ``sessions``; it is renamed.
    """
    ga4 = ((event.get("context") or {}).get("clientIds") or {}).get("ga4")
    if not isinstance(ga4, dict):
        return event
    if ga4.get("sessionIds"):
        ga4["sessionIds"] = dumps(ga4["sessionIds"])
    elif ga4.get("sessions"):
        ga4["sessionIds"] = dumps(ga4.pop("sessions"))
    return event


def metrics_meta(connection: ConnectionConfig | None, destination_id: str) -> dict[str, str]:
    """Metrics metadata sent alongside each row."""
    return {
        "workspaceId": connection.workspace_id if connection else "",
        "streamId": connection.stream_id if connection else "",
        "destinationId": destination_id,
        "connectionId": connection.id if connection else "",
        "functionId": FUNCTION_ID,
    }


class BulkerDestination:
    """Destination that writes rows to the bulk loader over HTTP.

    Each row produced by the configured layout is sent as its own request to
    ``{bulkerEndpoint}/post/{destinationId}?tableName={table}``. Rows are sent
    in layout order; the first failure stops the event.

    Any failure (oversized row, HTTP status other than 200, transport error,
    unknown layout) leaves ``deliver`` as a ``RetryError`` chained to the
    original exception.

    Examples:
        >>> destination = BulkerDestination(
        ...     BulkerDestinationConfig(
        ...         bulkerEndpoint="http://bulker:3042",
        ...         destinationId="dst",
        ...         authToken="secret",
        ...     ),
        ...     HttpClientPool(),
        ... )
        >>> await destination.deliver({"type": "page", "messageId": "m1"})
    """

    def __init__(
        self,
        config: BulkerDestinationConfig,
        http: HttpClientPool,
        settings: PipelineSettings | None = None,
        connection: ConnectionConfig | None = None,
        registry: LayoutRegistry | None = None,
    ):
        self.config = config
        self.http = http
        self.settings = settings or http.settings
        self.connection = connection
        self.registry = registry or default_registry

    def headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.auth_token}",
            "metricsMeta": dumps(metrics_meta(self.connection, self.config.destination_id)),
        }
        if self.config.stream_options:
            headers["streamOptions"] = dumps(self.config.stream_options)
        return headers

    def rows(self, event: "AnalyticsEvent | EventPayload") -> list[TransformedRow]:
        """Rows ``event`` is written as, after GA4 normalization."""
        payload = normalize_ga4(copy.deepcopy(as_payload(event)))
        return iter_rows(self.registry.transform(payload, self.config))

    async def send(self, row: TransformedRow) -> None:
        """Serialize, size-check and POST one row.

        Raises:
            PayloadTooLargeError: If the serialized row exceeds the limit.
            HTTPError: If the bulk loader does not answer 200.
        """
        body = dumps(row.event)
        size = len(body.encode("utf-8"))
        limit = self.settings.max_payload_bytes
        if size > limit:
            raise PayloadTooLargeError(size, limit, body[:PAYLOAD_EXCERPT_CHARS])
        response = await self.http.post(
            f"{self.config.bulker_endpoint}/post/{self.config.destination_id}",
            content=body,
            headers=self.headers(),
            params={"tableName": row.table},
        )
        check_response(response, self.settings.response_excerpt_chars)

    async def deliver(self, event: "AnalyticsEvent | EventPayload") -> "AnalyticsEvent | EventPayload":
        """Transform ``event`` and send every resulting row.

        Returns:
            The event as given.

        Raises:
            RetryError: On any failure, with the original error as ``__cause__``.
        """
        message_id = as_payload(event).get("messageId")
        try:
            for row in self.rows(event):
                await self.send(row)
                LOGGER.debug(
                    "Delivered row",
                    extra=log_extra(message_id=message_id, table=row.table),
                )
        except Exception as err:
            LOGGER.warning(
                f"Delivery failed: {err}",
                extra=log_extra(message_id=message_id, destination_id=self.config.destination_id),
            )
            raise RetryError.wrap(err) from err
        return event

    async def deliver_row(self, row: TransformedRow) -> TransformedRow:
        """Send an already transformed row.

        Raises:
            RetryError: On any failure, with the original error as ``__cause__``.
        """
        try:
            await self.send(row)
        except Exception as err:
            LOGGER.warning(
                f"Delivery failed: {err}",
                extra=log_extra(table=row.table, destination_id=self.config.destination_id),
            )
            raise RetryError.wrap(err) from err
        return row


async def deliver(
    row_or_event: "TransformedRow | AnalyticsEvent | EventPayload",
    destination_config: BulkerDestinationConfig,
    client: HttpClientPool | None = None,
    connection: ConnectionConfig | None = None,
) -> "TransformedRow | AnalyticsEvent | EventPayload":
    """Send a row, or every row of an event, to the bulk loader.

    A pool is created (and closed) for the call when ``client`` is omitted.

    Raises:
        RetryError: On any failure, with the original error as ``__cause__``.
    """
    if client is None:
        async with HttpClientPool() as pool:
            return await deliver(row_or_event, destination_config, pool, connection)
    destination = BulkerDestination(destination_config, client, connection=connection)
    if isinstance(row_or_event, TransformedRow):
        return await destination.deliver_row(row_or_event)
    return await destination.deliver(row_or_event)
