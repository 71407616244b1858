"""MongoDB collection wrapper with index management.

IndexedCollection wraps an AsyncCollection, creates its indexes on first
use and translates driver failures into ``StoreError``.
"""

from collections.abc import AsyncIterator, Sequence
from enum import IntEnum
from typing import Any

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from ...domain import StoreError


class IndexDirection(IntEnum):
    """Sort direction for MongoDB index fields."""

    ASC = ASCENDING
    """Ascending order (1)."""

    DESC = DESCENDING
    """Descending order (-1)."""


class IndexSpec(BaseModel):
    """Specification for a MongoDB index.

    Example:
        >>> # Compound index used for profile event lookups
        >>> IndexSpec.ascending(["_profile_id_hash", "_profile_id", "type"])
        >>>
        >>> # TTL index expiring each document at its own ``expireAt``
        >>> IndexSpec(
        ...     keys=[("expireAt", IndexDirection.ASC)],
        ...     expire_after_seconds=0,
        ... )
    """

    model_config = {"arbitrary_types_allowed": True}

    keys: list[tuple[str, IndexDirection]]
    """(field_name, direction) tuples."""

    unique: bool = False
    """If True, enforce uniqueness."""

    expire_after_seconds: int | None = None
    """If set, create a TTL index."""

    @classmethod
    def ascending(cls, fields: Sequence[str], unique: bool = False) -> "IndexSpec":
        """Index on ``fields``, all ascending."""
        return cls(keys=[(field, IndexDirection.ASC) for field in fields], unique=unique)

    async def apply(self, collection: AsyncCollection[dict[str, Any]]) -> None:
        """Apply this index specification to a collection.

        Args:
            collection: The MongoDB collection to create the index on.
        """
        kwargs: dict[str, Any] = {}
        if self.unique:
            kwargs["unique"] = True
        if self.expire_after_seconds is not None:
            kwargs["expireAfterSeconds"] = self.expire_after_seconds

        await collection.create_index(self.keys, **kwargs)


class IndexedCollection:
    """A MongoDB collection wrapper with automatic index management.

    IndexedCollection wraps an AsyncCollection and handles:
    - Lazy index creation (indexes created on first use)
    - The query patterns used by the stores
    - Translation of ``PyMongoError`` into ``StoreError``

    Example:
        >>> collection = IndexedCollection(
        ...     config.db["UR_conn-1"],
        ...     indexes=[
        ...         IndexSpec.ascending(["anonymousId"]),
        ...         IndexSpec(keys=[("expireAt", IndexDirection.ASC)], expire_after_seconds=0),
        ...     ],
        ... )
        >>> await collection.insert_one({"anonymousId": "a1", "event": {...}})
    """

    def __init__(
        self,
        collection: AsyncCollection[dict[str, Any]],
        indexes: list[IndexSpec] | None = None,
    ) -> None:
        self._collection = collection
        self._indexes = indexes or []
        self._indexes_created = False

    @property
    def name(self) -> str:
        return self._collection.name

    async def ensure_indexes(self) -> None:
        """Create indexes if not already created.

        Called automatically by other methods, but can be called
        explicitly for eager initialization.

        Raises:
            StoreError: If an index cannot be created.
        """
        if self._indexes_created:
            return

        try:
            for spec in self._indexes:
                await spec.apply(self._collection)
        except PyMongoError as e:
            raise StoreError(f"Failed to create indexes on {self.name}: {e}") from e

        self._indexes_created = True

    # ========== Find Operations ==========

    async def find_one(
        self,
        filter: dict[str, Any],
        projection: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Find a single document matching the filter."""
        await self.ensure_indexes()
        try:
            result: dict[str, Any] | None = await self._collection.find_one(
                filter, projection=projection
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to read from {self.name}: {e}") from e
        return result

    async def find(
        self,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
        projection: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Find documents matching the filter.

        Yields:
            Matching documents.
        """
        await self.ensure_indexes()

        cursor = self._collection.find(filter, projection=projection)
        if sort:
            cursor = cursor.sort(sort)

        try:
            async for doc in cursor:
                yield doc
        except PyMongoError as e:
            raise StoreError(f"Failed to read from {self.name}: {e}") from e

    # ========== Write Operations ==========

    async def insert_one(self, document: dict[str, Any]) -> bool:
        """Insert a single document.

        Returns:
            True if the write was acknowledged.
        """
        await self.ensure_indexes()
        try:
            result = await self._collection.insert_one(document)
        except PyMongoError as e:
            raise StoreError(f"Failed to write to {self.name}: {e}") from e
        return result.acknowledged

    async def find_one_and_update(
        self,
        filter: dict[str, Any],
        update: dict[str, Any] | list[dict[str, Any]],
        upsert: bool = False,
    ) -> dict[str, Any] | None:
        """Update a single document and return it as it is after the update."""
        await self.ensure_indexes()
        try:
            result: dict[str, Any] | None = await self._collection.find_one_and_update(
                filter, update, upsert=upsert, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to update {self.name}: {e}") from e
        return result

    async def update_many(self, filter: dict[str, Any], update: dict[str, Any]) -> int:
        """Update every document matching the filter.

        Returns:
            The number of modified documents.
        """
        await self.ensure_indexes()
        try:
            result = await self._collection.update_many(filter, update)
        except PyMongoError as e:
            raise StoreError(f"Failed to update {self.name}: {e}") from e
        return result.modified_count

    async def delete_many(self, filter: dict[str, Any]) -> int:
        """Delete every document matching the filter.

        Returns:
            The number of deleted documents.
        """
        await self.ensure_indexes()
        try:
            result = await self._collection.delete_many(filter)
        except PyMongoError as e:
            raise StoreError(f"Failed to delete from {self.name}: {e}") from e
        return result.deleted_count
