"""MongoDB implementation of the profile store."""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from pymongo.errors import CollectionInvalid, PyMongoError

from ...context import log_extra
from ...domain import EventPayload, StoreError
from ...profiles.store import PROFILE_ID_COLUMN, PROFILE_ID_HASH_COLUMN, ProfileStore
from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration

LOGGER = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def merge_pipeline(profile_id: str, event: EventPayload, now: datetime) -> list[dict[str, Any]]:
    """Update pipeline merging an identify event into a traits document.

    Event values are wrapped in ``$literal`` so user-supplied keys and
    strings starting with ``$`` are stored as data.
    """
    return [
        {
            "$set": {
                PROFILE_ID_COLUMN: {"$literal": profile_id},
                "userId": {"$ifNull": ["$userId", {"$literal": event.get("userId")}]},
                "anonymousId": {
                    "$ifNull": ["$anonymousId", {"$literal": event.get("anonymousId")}]
                },
                "traits": {
                    "$mergeObjects": ["$traits", {"$literal": event.get("traits") or {}}]
                },
                "createdAt": {"$ifNull": ["$createdAt", now]},
                "updatedAt": now,
            }
        }
    ]


class MongoProfileStore(ProfileStore):
    """MongoDB-backed profile store.

    Collections live in ``MongoConfiguration.profiles_database``. They are
    created as clustered collections whose documents expire after the
    profile window:

    - raw events: one document per event, tagged with ``_profile_id`` and
      ``_profile_id_hash``, indexed on ``(_profile_id_hash, _profile_id, type)``;
    - traits: one document per profile, uniquely indexed on ``_profile_id``.

    Examples:
        >>> store = MongoProfileStore(MongoConfiguration())
        >>> await store.ensure_collection("profiles-traits-ws-pb", 365, ["_profile_id"], unique=True)
        >>> await store.merge_profile("profiles-traits-ws-pb", "u1", event, utc_now())
    """

    def __init__(self, config: MongoConfiguration) -> None:
        self._config = config
        self._collections: dict[str, IndexedCollection] = {}

    def collection(self, name: str) -> IndexedCollection:
        if name not in self._collections:
            self._collections[name] = IndexedCollection(self._config.profiles_db[name])
        return self._collections[name]

    async def ensure_collection(
        self,
        name: str,
        ttl_days: int,
        index_fields: Sequence[str] = (),
        unique: bool = False,
    ) -> None:
        db = self._config.profiles_db
        try:
            if await db.list_collection_names(filter={"name": name}):
                return
            try:
                collection = await db.create_collection(
                    name,
                    clusteredIndex={"key": {"_id": 1}, "unique": True},
                    expireAfterSeconds=SECONDS_PER_DAY * ttl_days,
                )
            except CollectionInvalid:
                # Created concurrently by another worker
                return
            if index_fields:
                await IndexSpec.ascending(index_fields, unique=unique).apply(collection)
        except PyMongoError as e:
            raise StoreError(f"Failed to create collection {name}: {e}") from e
        LOGGER.info(f"Created profile collection {name}", extra=log_extra(ttl_days=ttl_days))

    async def merge_profile(
        self, collection: str, profile_id: str, event: EventPayload, now: datetime
    ) -> dict[str, Any]:
        doc = await self.collection(collection).find_one_and_update(
            {PROFILE_ID_COLUMN: profile_id},
            merge_pipeline(profile_id, event, now),
            upsert=True,
        )
        if doc is None:
            raise StoreError(f"Upsert of profile {profile_id} in {collection} returned nothing")
        doc.pop("_id", None)
        return doc

    async def insert_event(self, collection: str, document: dict[str, Any]) -> bool:
        # insert_one adds _id to the document it is given
        return await self.collection(collection).insert_one(dict(document))

    async def get_profile(self, collection: str, profile_id: str) -> dict[str, Any] | None:
        return await self.collection(collection).find_one(
            {PROFILE_ID_COLUMN: profile_id}, projection={"_id": False}
        )

    async def find_events(
        self, collection: str, profile_id: str, profile_id_hash: int
    ) -> list[dict[str, Any]]:
        return [
            doc
            async for doc in self.collection(collection).find(
                {PROFILE_ID_HASH_COLUMN: profile_id_hash, PROFILE_ID_COLUMN: profile_id},
                sort=[("_id", IndexDirection.ASC)],
                projection={"_id": False},
            )
        ]
