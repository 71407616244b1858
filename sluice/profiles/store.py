"""Profile storage: traits documents and the raw per-profile event log."""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from ..domain import EventPayload

PROFILE_ID_COLUMN = "_profile_id"
PROFILE_ID_HASH_COLUMN = "_profile_id_hash"


def merged_profile(
    existing: dict[str, Any] | None, profile_id: str, event: EventPayload, now: datetime
) -> dict[str, Any]:
    """Compute the traits document after merging an identify event.

    ``userId``, ``anonymousId`` and ``createdAt`` keep their stored value
    unless it is missing; ``traits`` are merged key by key with the incoming
    values winning; ``updatedAt`` is always refreshed.
    """
    doc = dict(existing or {})

    def if_null(field: str, value: Any) -> Any:
        current = doc.get(field)
        return value if current is None else current

    doc.update(
        {
            PROFILE_ID_COLUMN: profile_id,
            "userId": if_null("userId", event.get("userId")),
            "anonymousId": if_null("anonymousId", event.get("anonymousId")),
            "traits": {**(doc.get("traits") or {}), **(event.get("traits") or {})},
            "createdAt": if_null("createdAt", now),
            "updatedAt": now,
        }
    )
    return doc


class ProfileStore(ABC):
    """Abstract document store backing the profile builder.

    Two collections exist per workspace and profile builder: an append-only
    raw events collection and a traits collection (one document per
    profile). Both expire documents after the profile window.
    """

    @staticmethod
    def in_memory() -> "ProfileStore":
        return InMemoryProfileStore()

    @abstractmethod
    async def ensure_collection(
        self,
        name: str,
        ttl_days: int,
        index_fields: Sequence[str] = (),
        unique: bool = False,
    ) -> None:
        """Create ``name`` with a TTL of ``ttl_days`` and an index, unless it exists.

        Raises:
            StoreError: If the collection cannot be created.
        """
        ...

    @abstractmethod
    async def merge_profile(
        self, collection: str, profile_id: str, event: EventPayload, now: datetime
    ) -> dict[str, Any]:
        """Merge-upsert the traits document of ``profile_id`` (see ``merged_profile``).

        Returns:
            The document after the update.
        """
        ...

    @abstractmethod
    async def insert_event(self, collection: str, document: dict[str, Any]) -> bool:
        """Append a raw event document.

        Returns:
            True if the write was acknowledged.
        """
        ...

    @abstractmethod
    async def get_profile(self, collection: str, profile_id: str) -> dict[str, Any] | None:
        """Load the traits document of ``profile_id``, if any."""
        ...

    @abstractmethod
    async def find_events(
        self, collection: str, profile_id: str, profile_id_hash: int
    ) -> list[dict[str, Any]]:
        """Load the raw events of a profile in insertion order.

        Lookups go through the ``(_profile_id_hash, _profile_id)`` index.
        """
        ...


class CollectionRegistry:
    """Remembers which profile collections are known to exist.

    A registry lives as long as the profile builder that owns it; share one
    instance between builders to avoid repeated existence checks against the
    same store.
    """

    def __init__(self) -> None:
        self._created: set[str] = set()
        self._lock = asyncio.Lock()

    def __contains__(self, name: object) -> bool:
        return name in self._created

    async def ensure(
        self,
        store: ProfileStore,
        name: str,
        ttl_days: int,
        index_fields: Sequence[str] = (),
        unique: bool = False,
    ) -> None:
        """Ensure ``name`` exists in ``store``, hitting the store only once per name."""
        if name in self._created:
            return
        async with self._lock:
            if name in self._created:
                return
            await store.ensure_collection(name, ttl_days, index_fields, unique)
            self._created.add(name)

    def clear(self) -> None:
        self._created.clear()


class InMemoryProfileStore(ProfileStore):
    """In-memory profile store for development and testing.

    Documents never expire; ``collections`` records the TTL and index each
    collection was created with.
    """

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.events: dict[str, list[dict[str, Any]]] = defaultdict(list)

    async def ensure_collection(
        self,
        name: str,
        ttl_days: int,
        index_fields: Sequence[str] = (),
        unique: bool = False,
    ) -> None:
        self.collections.setdefault(
            name, {"ttl_days": ttl_days, "index_fields": list(index_fields), "unique": unique}
        )

    async def merge_profile(
        self, collection: str, profile_id: str, event: EventPayload, now: datetime
    ) -> dict[str, Any]:
        existing = self.profiles[collection].get(profile_id)
        doc = merged_profile(existing, profile_id, event, now)
        self.profiles[collection][profile_id] = doc
        return copy.deepcopy(doc)

    async def insert_event(self, collection: str, document: dict[str, Any]) -> bool:
        self.events[collection].append(copy.deepcopy(document))
        return True

    async def get_profile(self, collection: str, profile_id: str) -> dict[str, Any] | None:
        doc = self.profiles[collection].get(profile_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_events(
        self, collection: str, profile_id: str, profile_id_hash: int
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(doc)
            for doc in self.events[collection]
            if doc.get(PROFILE_ID_HASH_COLUMN) == profile_id_hash
            and doc.get(PROFILE_ID_COLUMN) == profile_id
        ]
