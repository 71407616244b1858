"""Process-level pipeline settings using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings


class PipelineSettings(BaseSettings):
    """Settings shared by the delivery and profile stages.

    All settings can be configured via environment variables with the
    SLUICE_ prefix. For example:
    - SLUICE_CONCURRENCY=20
    - SLUICE_FETCH_TIMEOUT_MS=5000
    - SLUICE_BULKER_URL=http://bulker:3042

    Attributes:
        concurrency: Maximum number of pooled HTTP connections.
        fetch_timeout_ms: Connect/read/write/pool timeout of each HTTP call.
        bulker_url: Base URL of the bulk loader (batch webhooks, profile triggers).
        bulker_auth_key: Bearer token for the bulk loader.
        max_payload_bytes: Largest serialized row accepted for delivery.
        response_excerpt_chars: Response body characters kept on HTTP errors.

    Example:
        >>> settings = PipelineSettings(concurrency=4)
        >>> settings.fetch_timeout_seconds
        2.0
    """

    concurrency: int = Field(default=10, gt=0)
    fetch_timeout_ms: int = Field(default=2000, gt=0)
    bulker_url: str | None = None
    bulker_auth_key: str | None = None
    max_payload_bytes: int = Field(default=1_000_000, gt=0)
    response_excerpt_chars: int = 255

    model_config = {"env_prefix": "SLUICE_"}

    @property
    def fetch_timeout_seconds(self) -> float:
        return self.fetch_timeout_ms / 1000
