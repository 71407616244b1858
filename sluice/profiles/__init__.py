"""Profile hashing, partitioning and persistence."""

from .builder import ProfileBuilder, ProfileSnapshot, profile_id_of
from .hashing import ID_HASH_32_MAX_VALUE, hash_value, int32_hash
from .store import (
    PROFILE_ID_COLUMN,
    PROFILE_ID_HASH_COLUMN,
    CollectionRegistry,
    InMemoryProfileStore,
    ProfileStore,
    merged_profile,
)

__all__ = [
    "ProfileBuilder",
    "ProfileSnapshot",
    "ProfileStore",
    "InMemoryProfileStore",
    "CollectionRegistry",
    "merged_profile",
    "profile_id_of",
    "hash_value",
    "int32_hash",
    "ID_HASH_32_MAX_VALUE",
    "PROFILE_ID_COLUMN",
    "PROFILE_ID_HASH_COLUMN",
]
