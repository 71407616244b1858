import hashlib

ID_HASH_32_MAX_VALUE = 2147483647
"""Largest positive signed 32-bit integer; shard hashes are taken modulo it."""


def hash_value(algorithm: str, value: str) -> str:
    """Hex digest of ``value`` (UTF-8) with a hashlib algorithm name."""
    return hashlib.new(algorithm, value.encode("utf-8")).hexdigest()


def int32_hash(value: str) -> int:
    """Deterministic shard hash of a profile id.

    The first 8 hex characters of the SHA-256 digest are read as an unsigned
    32-bit integer and reduced modulo ``2147483647``, so the result always
    lies in ``[0, 2147483647)``.

    Examples:
        >>> int32_hash("user-1") == int32_hash("user-1")
        True
        >>> 0 <= int32_hash("user-1") < ID_HASH_32_MAX_VALUE
        True
    """
    return int(hash_value("sha256", value)[:8], 16) % ID_HASH_32_MAX_VALUE
