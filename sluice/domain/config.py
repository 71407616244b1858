"""Read-only connection and destination configuration models.

Configurations arrive as camelCase JSON from the console; every model
accepts both the camelCase alias and the snake_case field name.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

LayoutId = Literal["segment", "segment-single-table", "jitsu-legacy", "passthrough"]

DEFAULT_LAYOUT: LayoutId = "segment-single-table"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class ConnectionOptions(_ConfigModel):
    """Options of a source → destination connection."""

    deduplicate: bool = False
    primary_key: str | list[str] | None = Field(default=None, alias="primaryKey")
    functions_env: dict[str, str] = Field(default_factory=dict, alias="functionsEnv")
    mode: Literal["stream", "batch"] | None = None

    @property
    def has_deduplication(self) -> bool:
        """True when message-level deduplication with a primary key is configured."""
        return self.deduplicate and bool(self.primary_key)


class ConnectionConfig(_ConfigModel):
    """A connection between a stream (source) and a destination.

    Attributes:
        id: Connection id; names the recognition collection.
        workspace_id: Owning workspace.
        stream_id: Source stream id.
        destination_id: Destination id.
        destination_type: Destination type, e.g. ``clickhouse`` or ``profiles``.
        options: Connection options.
    """

    id: str
    workspace_id: str = Field(default="", alias="workspaceId")
    stream_id: str = Field(default="", alias="streamId")
    destination_id: str = Field(default="", alias="destinationId")
    destination_type: str = Field(default="", alias="destinationType")
    options: ConnectionOptions = Field(default_factory=ConnectionOptions)


class LayoutConfig(_ConfigModel):
    """Selects the data layout used to turn events into rows."""

    data_layout: str = Field(default=DEFAULT_LAYOUT, alias="dataLayout")
    keep_original_names: bool = Field(default=False, alias="keepOriginalNames")


class BulkerDestinationConfig(LayoutConfig):
    """Configuration of the bulk-loader destination (row-oriented storage)."""

    bulker_endpoint: str = Field(alias="bulkerEndpoint")
    destination_id: str = Field(alias="destinationId")
    auth_token: str = Field(alias="authToken")
    stream_options: dict[str, Any] | None = Field(default=None, alias="streamOptions")

    @field_validator("bulker_endpoint")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class WebhookDestinationConfig(_ConfigModel):
    """Configuration of the generic webhook destination.

    ``payload`` holds the custom payload template. The console stores it as
    a JSON document ``{"code": "..."}``; both that form and a bare template
    string are accepted.
    """

    url: str
    method: str = "POST"
    headers: list[str] = Field(default_factory=list)
    custom_payload: bool = Field(default=False, alias="customPayload")
    payload: str | None = None

    @field_validator("payload", mode="before")
    @classmethod
    def _unwrap_code(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get("code")
        if isinstance(value, str) and value.lstrip().startswith("{"):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return value
            if isinstance(parsed, dict) and "code" in parsed:
                return parsed["code"]
        return value

    def parsed_headers(self) -> dict[str, str]:
        """Parse ``"Name: value"`` header lines into a mapping."""
        result: dict[str, str] = {}
        for header in self.headers:
            name, _, value = header.partition(":")
            if name.strip():
                result[name.strip()] = value.strip()
        return result


class ProfilesConfig(_ConfigModel):
    """Configuration of the profile builder destination."""

    profile_builder_id: str = Field(alias="profileBuilderId")
    enable_anonymous_profiles: bool = Field(default=False, alias="enableAnonymousProfiles")
    profile_window_days: int = Field(default=365, alias="profileWindowDays", gt=0)
    run_period_sec: int = Field(default=60, alias="runPeriodSec")
    events_database: str = Field(default="profiles", alias="eventsDatabase")
    events_collection_name: str = Field(default="profiles-raw", alias="eventsCollectionName")
    traits_collection_name: str = Field(default="profiles-traits", alias="traitsCollectionName")

    def events_collection(self, workspace_id: str) -> str:
        """Raw-events collection for this workspace and profile builder."""
        return f"{self.events_collection_name}-{workspace_id}-{self.profile_builder_id}"

    def traits_collection(self, workspace_id: str) -> str:
        """Traits collection for this workspace and profile builder."""
        return f"{self.traits_collection_name}-{workspace_id}-{self.profile_builder_id}"
