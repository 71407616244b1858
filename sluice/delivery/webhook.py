"""Generic webhook destination with templated payloads."""

import logging
import re
from collections.abc import Mapping

from ..context import log_extra
from ..domain import (
    AnalyticsEvent,
    ConfigurationError,
    ConnectionConfig,
    EventPayload,
    RetryError,
    WebhookDestinationConfig,
    as_payload,
)
from ..settings import PipelineSettings
from .bulker import dumps, metrics_meta
from .client import HttpClientPool, check_response

LOGGER = logging.getLogger(__name__)

MACRO_PATTERN = re.compile(r"\{\{\s*([\w.-]+)\s*}}")

ENV_PREFIX = "env."


def event_name(event: EventPayload) -> str:
    return event.get("event") or event.get("type") or ""


def render_payload(
    template: str, event: EventPayload, functions_env: Mapping[str, str] | None = None
) -> str:
    """Substitute ``{{MACRO}}`` placeholders in a payload template.

    Supported macros (names are case-insensitive except the ``env.`` prefix):

    - ``EVENT``: the event as JSON
    - ``EVENTS``: a one-element JSON array holding the event
    - ``EVENTS_COUNT``: ``1``
    - ``NAME`` / ``EVENTS_NAME``: the event name, or its type
    - ``env.KEY``: connection environment variable ``KEY`` (empty if unset)

    Unknown macros are left as they are.

    Examples:
        >>> render_payload('{"n": "{{ name }}"}', {"type": "track", "event": "Buy"})
        '{"n": "Buy"}'
        >>> render_payload("{{env.TOKEN}}/{{other}}", {}, {"TOKEN": "t"})
        't/{{other}}'
    """
    env = functions_env or {}

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        upper = name.upper()
        if upper == "EVENT":
            return dumps(event)
        if upper == "EVENTS":
            return dumps([event])
        if upper == "EVENTS_COUNT":
            return "1"
        if upper in ("NAME", "EVENTS_NAME"):
            return event_name(event)
        if name.startswith(ENV_PREFIX):
            return env.get(name[len(ENV_PREFIX):]) or ""
        return match.group(0)

    return MACRO_PATTERN.sub(substitute, template)


class WebhookDestination:
    """Destination that sends each event to a user-configured URL.

    In batch mode (``connection.options.mode == "batch"`` with a bulk loader
    URL configured) the event is handed to the bulk loader instead, which
    batches it for the webhook.

    Any failure leaves ``deliver`` as a ``RetryError`` chained to the
    original exception.
    """

    def __init__(
        self,
        config: WebhookDestinationConfig,
        http: HttpClientPool,
        connection: ConnectionConfig,
        settings: PipelineSettings | None = None,
    ):
        self.config = config
        self.http = http
        self.connection = connection
        self.settings = settings or http.settings

    @property
    def batch_mode(self) -> bool:
        return self.connection.options.mode == "batch" and bool(self.settings.bulker_url)

    def payload(self, event: EventPayload) -> str:
        """Request body for ``event``.

        Raises:
            ConfigurationError: If a custom payload is enabled without a template.
        """
        if not self.config.custom_payload:
            return dumps(event)
        if self.config.payload is None:
            raise ConfigurationError("Custom payload is enabled but no payload template is set")
        return render_payload(self.config.payload, event, self.connection.options.functions_env)

    async def _send(self, event: EventPayload) -> None:
        response = await self.http.post(
            self.config.url,
            content=self.payload(event),
            headers={"Content-Type": "application/json", **self.config.parsed_headers()},
            method=self.config.method or "POST",
        )
        check_response(response, self.settings.response_excerpt_chars, strict=False)

    async def _send_batch(self, event: EventPayload) -> None:
        headers = {
            "metricsMeta": dumps(metrics_meta(self.connection, self.connection.destination_id))
        }
        if self.settings.bulker_auth_key:
            headers["Authorization"] = f"Bearer {self.settings.bulker_auth_key}"
        response = await self.http.post(
            f"{self.settings.bulker_url.rstrip('/')}/post/{self.connection.id}",
            content=dumps(event),
            headers=headers,
            params={"tableName": event_name(event), "modeOverride": "batch"},
        )
        check_response(response, self.settings.response_excerpt_chars, strict=False)

    async def deliver(self, event: "AnalyticsEvent | EventPayload") -> "AnalyticsEvent | EventPayload":
        """Send ``event`` to the webhook (or to the bulk loader in batch mode).

        Raises:
            RetryError: On any failure, with the original error as ``__cause__``.
        """
        payload = as_payload(event)
        message_id = payload.get("messageId")
        try:
            if self.batch_mode:
                await self._send_batch(payload)
            else:
                await self._send(payload)
        except Exception as err:
            LOGGER.warning(
                f"Webhook delivery failed: {err}",
                extra=log_extra(message_id=message_id, connection_id=self.connection.id),
            )
            raise RetryError.wrap(err) from err
        LOGGER.debug(
            "Delivered webhook event",
            extra=log_extra(message_id=message_id, batch=self.batch_mode),
        )
        return event
