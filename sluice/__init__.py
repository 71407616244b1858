"""Sluice - analytics event transformation and identity recognition.

This module provides the public API of the pipeline: transform events into
destination rows, recognize anonymous users once they identify, and deliver
rows to HTTP sinks.
"""

from .context import ExecutionContext, FunctionContext
from .delivery import (
    BulkerDestination,
    HttpClientPool,
    RetryPolicy,
    WebhookDestination,
    deliver,
)
from .domain import (
    AnalyticsEvent,
    ConnectionConfig,
    HTTPError,
    LayoutConfig,
    RetryError,
    SluiceError,
    StoreError,
    ValidationError,
)
from .layouts import TransformedRow, register_layout, transform
from .profiles import ProfileBuilder, int32_hash
from .recognition import AnonymousEventsStore, UserRecognition, recognize
from .settings import PipelineSettings

__all__ = [
    # Pipeline operations
    "transform",
    "recognize",
    "deliver",
    "register_layout",
    "int32_hash",
    # Stages
    "UserRecognition",
    "BulkerDestination",
    "WebhookDestination",
    "ProfileBuilder",
    "RetryPolicy",
    "HttpClientPool",
    "AnonymousEventsStore",
    # Domain primitives
    "AnalyticsEvent",
    "TransformedRow",
    "LayoutConfig",
    "ConnectionConfig",
    "ExecutionContext",
    "FunctionContext",
    "PipelineSettings",
    # Errors
    "SluiceError",
    "ValidationError",
    "HTTPError",
    "RetryError",
    "StoreError",
]
