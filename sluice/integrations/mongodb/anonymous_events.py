"""MongoDB implementation of the anonymous events store."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from ulid import ULID

from ...context import log_extra
from ...domain import EventPayload, StoreError, utc_now
from ...recognition.store import AnonymousEventsStore
from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration

LOGGER = logging.getLogger(__name__)

CLAIM_LEASE = timedelta(minutes=5)
"""How long a claim blocks other evictions if its owner never finishes."""


class MongoAnonymousEventsStore(AnonymousEventsStore):
    """MongoDB-backed buffer of anonymous events.

    One collection per recognition collection name (``UR_{connectionId}``),
    one document per buffered event:

        {
            "_id": ObjectId(),
            "anonymousId": "anon-1",
            "event": { ... the event ... },
            "createdAt": ISODate(...),
            "expireAt": ISODate(...)
        }

    A TTL index on ``expireAt`` removes events once their window has passed;
    since the TTL monitor runs periodically, expired documents are also
    filtered out on eviction.

    Eviction happens in three steps:

    1. claim: ``update_many`` stamps the key's unclaimed documents with a
       fresh ``claim`` token and ``claimedAt``. Each document is claimed by
       exactly one eviction; an event added afterwards stays for the next.
    2. read the claimed documents in insertion order.
    3. delete them by ``claim``.

    If reading or deleting fails, the claim is released and ``StoreError``
    propagates with every document still buffered, so the eviction can be
    retried. A claim whose owner died is taken over once it is older than
    ``CLAIM_LEASE``.

    Examples:
        >>> store = MongoAnonymousEventsStore(MongoConfiguration())
        >>> await store.add_event("UR_conn-1", "anon-1", {"type": "page"}, 30)
        >>> await store.evict_events("UR_conn-1", "anon-1")
        [{'type': 'page'}]
    """

    def __init__(
        self, config: MongoConfiguration, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self._config = config
        self._clock = clock
        self._collections: dict[str, IndexedCollection] = {}

    def collection(self, name: str) -> IndexedCollection:
        """The indexed collection backing recognition collection ``name``."""
        if name not in self._collections:
            self._collections[name] = IndexedCollection(
                self._config.db[name],
                indexes=[
                    IndexSpec(keys=[("anonymousId", IndexDirection.ASC)]),
                    IndexSpec(keys=[("claim", IndexDirection.ASC)]),
                    IndexSpec(keys=[("expireAt", IndexDirection.ASC)], expire_after_seconds=0),
                ],
            )
        return self._collections[name]

    async def add_event(
        self, collection: str, anonymous_id: str, event: EventPayload, window_days: int
    ) -> None:
        now = self._clock()
        doc: dict[str, Any] = {
            "anonymousId": anonymous_id,
            "event": event,
            "createdAt": now,
            "expireAt": now + timedelta(days=window_days),
        }
        if not await self.collection(collection).insert_one(doc):
            raise StoreError(f"Insert into {collection} was not acknowledged")

    async def evict_events(self, collection: str, anonymous_id: str) -> list[EventPayload]:
        indexed = self.collection(collection)
        now = self._clock()
        token = str(ULID())
        claimed = await indexed.update_many(
            {
                "anonymousId": anonymous_id,
                "$or": [{"claim": None}, {"claimedAt": {"$lt": now - CLAIM_LEASE}}],
            },
            {"$set": {"claim": token, "claimedAt": now}},
        )
        if not claimed:
            return []

        try:
            docs = [
                doc
                async for doc in indexed.find(
                    {"claim": token},
                    sort=[("createdAt", IndexDirection.ASC), ("_id", IndexDirection.ASC)],
                )
            ]
            await indexed.delete_many({"claim": token})
        except StoreError:
            await self._release(indexed, token, anonymous_id)
            raise

        events = [doc["event"] for doc in docs if not _expired(doc, now)]
        if len(events) < len(docs):
            LOGGER.debug(
                f"Dropped {len(docs) - len(events)} expired buffered events",
                extra=log_extra(collection=collection, anonymous_id=anonymous_id),
            )
        return events

    async def _release(self, indexed: IndexedCollection, token: str, anonymous_id: str) -> None:
        try:
            await indexed.update_many(
                {"claim": token}, {"$unset": {"claim": "", "claimedAt": ""}}
            )
        except StoreError as err:
            LOGGER.warning(
                f"Failed to release claim {token}, events return after the lease: {err}",
                extra=log_extra(collection=indexed.name, anonymous_id=anonymous_id),
            )


def _expired(doc: dict[str, Any], now: datetime) -> bool:
    expire_at = doc.get("expireAt")
    return expire_at is not None and expire_at <= now
