"""Delivery of rows and events to HTTP sinks."""

from .bulker import BulkerDestination, deliver, normalize_ga4
from .client import HttpClientPool, check_response
from .retries import Outcome, RetryPolicy
from .webhook import WebhookDestination, render_payload

__all__ = [
    "HttpClientPool",
    "check_response",
    "BulkerDestination",
    "WebhookDestination",
    "deliver",
    "normalize_ga4",
    "render_payload",
    "Outcome",
    "RetryPolicy",
]
