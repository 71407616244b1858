"""Pooled async HTTP client shared by destinations."""

import logging
from functools import cached_property
from typing import Any

import httpx

from ..context import log_extra
from ..domain import HTTPError
from ..settings import PipelineSettings

LOGGER = logging.getLogger(__name__)


class HttpClientPool:
    """Owner of one pooled ``httpx.AsyncClient``.

    The pool bounds the number of connections (``settings.concurrency``) and
    applies ``settings.fetch_timeout_ms`` to connecting, reading, writing and
    waiting for a free connection, so a slow sink fails the single call
    instead of blocking the pool.

    The client is created lazily and lives until ``aclose()``; create one
    pool per process (or per test) and inject it into destinations.

    Examples:
        >>> async with HttpClientPool(PipelineSettings()) as pool:
        ...     response = await pool.post("http://sink/ingest", content=b"{}")

        Tests inject a mock transport:

        >>> pool = HttpClientPool(transport=httpx.MockTransport(handler))
    """

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or PipelineSettings()
        self._transport = transport

    @cached_property
    def client(self) -> httpx.AsyncClient:
        """The pooled client, created on first use."""
        concurrency = self.settings.concurrency
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.fetch_timeout_seconds),
            limits=httpx.Limits(
                max_connections=concurrency,
                max_keepalive_connections=concurrency,
            ),
            transport=self._transport,
        )

    async def post(
        self,
        url: str,
        content: bytes | str | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        method: str = "POST",
    ) -> httpx.Response:
        """Send a request through the pool and return the fully read response."""
        return await self.client.request(
            method, url, content=content, headers=headers, params=params
        )

    async def aclose(self) -> None:
        """Close the client if it was created."""
        if "client" in self.__dict__:
            await self.client.aclose()
            del self.__dict__["client"]

    async def on_startup(self) -> None:
        """No-op: connections are established lazily."""
        pass

    async def on_shutdown(self) -> None:
        await self.aclose()

    async def __aenter__(self) -> "HttpClientPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False


def check_response(response: httpx.Response, excerpt_chars: int = 255, strict: bool = True) -> str:
    """Validate a sink response and return its body text.

    Args:
        response: The response to check.
        excerpt_chars: Maximum number of body characters kept on errors.
        strict: Accept only 200 when True, any 2xx otherwise.

    Raises:
        HTTPError: If the status is not accepted.
    """
    ok = response.status_code == 200 if strict else response.is_success
    body = response.text
    if not ok:
        raise HTTPError(
            f"HTTP Error: {response.status_code} {response.reason_phrase}".rstrip(),
            response.status_code,
            body[:excerpt_chars],
        )
    LOGGER.debug(
        f"HTTP Status: {response.status_code} Response: {body[:excerpt_chars]}",
        extra=log_extra(),
    )
    return body
