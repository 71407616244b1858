"""Profile builder destination: persist identity-keyed events and traits."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..context import FunctionContext, log_extra
from ..delivery.client import HttpClientPool, check_response
from ..domain import (
    AnalyticsEvent,
    ConfigurationError,
    EventPayload,
    ProfileIdParameter,
    ProfilePriorityParameter,
    ProfilesConfig,
    StoreError,
    as_payload,
    utc_now,
)
from ..settings import PipelineSettings
from ..transfer import transfer
from .hashing import int32_hash
from .store import (
    PROFILE_ID_COLUMN,
    PROFILE_ID_HASH_COLUMN,
    CollectionRegistry,
    ProfileStore,
)

LOGGER = logging.getLogger(__name__)


def profile_id_of(event: EventPayload) -> str | None:
    """Profile id of an event: the explicit override, else ``userId``."""
    return event.get(ProfileIdParameter) or event.get("userId") or None


@dataclass
class ProfileSnapshot:
    """Traits document and raw events of one profile."""

    profile_id: str
    user: dict[str, Any] | None
    events: list[dict[str, Any]] = field(default_factory=list)


class ProfileBuilder:
    """Writes events into the per-workspace profile collections.

    For every event with a profile id:

    1. ensures both collections exist (once per collection name, see
       ``CollectionRegistry``);
    2. for ``identify`` events, merge-upserts the traits document;
    3. appends the raw event, tagged with the profile id and its shard
       hash, to the raw events collection;
    4. notifies the bulk loader that the profile must be rebuilt, with the
       event's processing priority.

    Store failures are logged with the message id, then propagate as
    ``StoreError`` and abort the event before the bulk loader is notified.

    Examples:
        >>> builder = ProfileBuilder(
        ...     ProfilesConfig(profileBuilderId="pb1"),
        ...     ProfileStore.in_memory(),
        ...     HttpClientPool(settings),
        ...     settings,
        ... )
        >>> await builder({"type": "identify", "userId": "u1", "traits": {"a": 1}}, ctx)
    """

    def __init__(
        self,
        config: ProfilesConfig,
        store: ProfileStore,
        http: HttpClientPool,
        settings: PipelineSettings | None = None,
        collections: CollectionRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.store = store
        self.http = http
        self.settings = settings or http.settings
        self.collections = collections or CollectionRegistry()
        self._clock = clock

    async def ensure_collections(self, workspace_id: str) -> tuple[str, str]:
        """Ensure the raw events and traits collections exist.

        Returns:
            ``(events_collection, traits_collection)``
        """
        events_collection = self.config.events_collection(workspace_id)
        traits_collection = self.config.traits_collection(workspace_id)
        ttl_days = self.config.profile_window_days
        await self.collections.ensure(
            self.store,
            events_collection,
            ttl_days,
            [PROFILE_ID_HASH_COLUMN, PROFILE_ID_COLUMN, "type"],
        )
        await self.collections.ensure(
            self.store, traits_collection, ttl_days, [PROFILE_ID_COLUMN], unique=True
        )
        return events_collection, traits_collection

    async def __call__(
        self, event: "AnalyticsEvent | EventPayload", context: FunctionContext
    ) -> None:
        payload = as_payload(event)
        message_id = payload.get("messageId")
        profile_id = profile_id_of(payload)
        if not profile_id:
            LOGGER.debug("No profileId found. Skipping", extra=log_extra(message_id=message_id))
            return

        try:
            await self._store(payload, profile_id, context.workspace_id)
        except StoreError as err:
            LOGGER.error(
                f"Failed to store profile event: {err}",
                extra=log_extra(message_id=message_id, profile_id=profile_id),
            )
            raise

        await self.notify(profile_id, payload.get(ProfilePriorityParameter) or 0, message_id)

    async def _store(self, payload: EventPayload, profile_id: str, workspace_id: str) -> None:
        message_id = payload.get("messageId")
        events_collection, traits_collection = await self.ensure_collections(workspace_id)

        if payload.get("type") == "identify":
            profile = await self.store.merge_profile(
                traits_collection, profile_id, payload, self._clock()
            )
            LOGGER.info(
                "Merged profile",
                extra=log_extra(
                    message_id=message_id,
                    profile_id=profile_id,
                    traits=sorted((profile.get("traits") or {}).keys()),
                ),
            )

        document: dict[str, Any] = {
            PROFILE_ID_HASH_COLUMN: int32_hash(profile_id),
            PROFILE_ID_COLUMN: profile_id,
        }
        transfer(document, payload, [ProfileIdParameter])
        if await self.store.insert_event(events_collection, document):
            LOGGER.debug(
                "Inserted profile event",
                extra=log_extra(message_id=message_id, collection=events_collection),
            )
        else:
            LOGGER.error(
                "Profile event insert was not acknowledged",
                extra=log_extra(message_id=message_id, collection=events_collection),
            )

    async def notify(self, profile_id: str, priority: int, message_id: str | None = None) -> None:
        """Ask the bulk loader to rebuild ``profile_id`` at ``priority``.

        Raises:
            ConfigurationError: If no bulk loader URL is configured.
            HTTPError: If the bulk loader does not answer 200.
        """
        base_url = self.settings.bulker_url
        if not base_url:
            raise ConfigurationError("Bulk loader URL is not configured (SLUICE_BULKER_URL)")
        headers = {}
        if self.settings.bulker_auth_key:
            headers["Authorization"] = f"Bearer {self.settings.bulker_auth_key}"
        response = await self.http.post(
            f"{base_url.rstrip('/')}/profiles/{self.config.profile_builder_id}/{priority}",
            headers=headers,
            params={"profileId": profile_id},
        )
        check_response(response, self.settings.response_excerpt_chars)
        LOGGER.debug(
            "Profile rebuild scheduled",
            extra=log_extra(message_id=message_id, profile_id=profile_id, priority=priority),
        )

    async def load(self, profile_id: str, workspace_id: str) -> ProfileSnapshot:
        """Load the traits document and raw events of a profile."""
        events_collection, traits_collection = await self.ensure_collections(workspace_id)
        user = await self.store.get_profile(traits_collection, profile_id)
        events = await self.store.find_events(
            events_collection, profile_id, int32_hash(profile_id)
        )
        return ProfileSnapshot(profile_id=profile_id, user=user, events=events)
