"""MongoDB integration for the sluice pipeline.

This module provides MongoDB implementations of the AnonymousEventsStore
and ProfileStore interfaces using the async PyMongo driver.

Usage:
    >>> from sluice.integrations.mongodb import (
    ...     MongoConfiguration,
    ...     MongoAnonymousEventsStore,
    ...     MongoProfileStore,
    ... )
    >>>
    >>> config = MongoConfiguration(uri="mongodb://localhost:27017")
    >>> anonymous_events = MongoAnonymousEventsStore(config)
    >>> profiles = MongoProfileStore(config)
    >>> ...
    >>> await config.on_shutdown()
"""

from .anonymous_events import MongoAnonymousEventsStore
from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration
from .profiles import MongoProfileStore

__all__ = [
    "MongoConfiguration",
    "MongoAnonymousEventsStore",
    "MongoProfileStore",
    "IndexedCollection",
    "IndexSpec",
    "IndexDirection",
]
