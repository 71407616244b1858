"""Domain primitives shared by every pipeline stage.

- AnalyticsEvent / EventPayload: the unit of work
- Internal parameter names that ride on events
- Connection and destination configuration models
- The error taxonomy (ValidationError, HTTPError, RetryError, StoreError)
"""

from .config import (
    DEFAULT_LAYOUT,
    BulkerDestinationConfig,
    ConnectionConfig,
    ConnectionOptions,
    LayoutConfig,
    LayoutId,
    ProfilesConfig,
    WebhookDestinationConfig,
)
from .event import (
    INTERNAL_PARAMETERS,
    AnalyticsEvent,
    EventPayload,
    EventType,
    ProfileIdParameter,
    ProfilePriorityParameter,
    TableNameParameter,
    UserRecognitionParameter,
    as_payload,
    utc_now,
)
from .exceptions import (
    ConfigurationError,
    HTTPError,
    PayloadTooLargeError,
    RetryError,
    SluiceError,
    StoreError,
    ValidationError,
)

__all__ = [
    # Events
    "AnalyticsEvent",
    "EventPayload",
    "EventType",
    "as_payload",
    "utc_now",
    "INTERNAL_PARAMETERS",
    "TableNameParameter",
    "UserRecognitionParameter",
    "ProfileIdParameter",
    "ProfilePriorityParameter",
    # Configuration
    "LayoutId",
    "DEFAULT_LAYOUT",
    "LayoutConfig",
    "ConnectionConfig",
    "ConnectionOptions",
    "BulkerDestinationConfig",
    "WebhookDestinationConfig",
    "ProfilesConfig",
    # Errors
    "SluiceError",
    "ValidationError",
    "PayloadTooLargeError",
    "ConfigurationError",
    "HTTPError",
    "RetryError",
    "StoreError",
]
