"""Identity recognition: buffer anonymous events, re-emit them once identified."""

from .engine import (
    IDENTIFYING_TRAITS_ENV,
    LOOKBACK_WINDOW_DAYS,
    RecognitionResult,
    UserRecognition,
    collection_name,
    identifying_traits,
    merge_identity,
    recognize,
)
from .store import AnonymousEventsStore, InMemoryAnonymousEventsStore

__all__ = [
    "AnonymousEventsStore",
    "InMemoryAnonymousEventsStore",
    "UserRecognition",
    "RecognitionResult",
    "recognize",
    "merge_identity",
    "collection_name",
    "identifying_traits",
    "IDENTIFYING_TRAITS_ENV",
    "LOOKBACK_WINDOW_DAYS",
]
