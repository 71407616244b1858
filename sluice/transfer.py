"""Field transfer helpers used by every layout.

These functions copy keys from a source mapping into a target mapping with
optional exclusions and key renaming. They never raise: a missing or
non-mapping source is skipped silently. Only ``target`` is mutated.
"""

import re
from collections.abc import Callable, Collection, Mapping
from typing import Any

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_SEPARATORS = re.compile(r"[\s\-.]+")


def to_snake_case(name: str) -> str:
    """Convert a camelCase / PascalCase / spaced key to snake_case.

    Examples:
        >>> to_snake_case("messageId")
        'message_id'
        >>> to_snake_case("HTTPStatus")
        'http_status'
        >>> to_snake_case("Signed Up")
        'signed_up'
    """
    name = _SEPARATORS.sub("_", name.strip())
    return _WORD_BOUNDARY.sub("_", name).lower()


def _transfer(
    target: dict[str, Any],
    source: Any,
    exclude: Collection[str] | None,
    rename: Callable[[str], str] | None,
) -> None:
    if not isinstance(source, Mapping):
        return
    for key, value in source.items():
        if exclude and key in exclude:
            continue
        target_key = rename(key) if rename else key
        existing = target.get(target_key)
        # nested mappings merge one level deep into an existing subtree
        if isinstance(value, Mapping) and isinstance(existing, dict):
            existing.update(value)
        else:
            target[target_key] = value


def transfer(
    target: dict[str, Any],
    source: Mapping[str, Any] | None,
    exclude: Collection[str] | None = None,
) -> None:
    """Copy every key of ``source`` not listed in ``exclude`` into ``target``.

    When both sides hold a mapping under the same key, the source mapping is
    merged one level into the target one; otherwise the value is assigned
    as-is (no copy).

    Args:
        target: Mapping to write into.
        source: Mapping to read from. ``None`` is ignored.
        exclude: Keys of ``source`` to skip.

    Examples:
        >>> target = {"context": {"ip": "1.1.1.1"}}
        >>> transfer(target, {"context": {"locale": "en"}, "type": "page"}, ["type"])
        >>> target
        {'context': {'ip': '1.1.1.1', 'locale': 'en'}}
    """
    _transfer(target, source, exclude, None)


def transfer_as_snake_case(
    target: dict[str, Any],
    source: Mapping[str, Any] | None,
    exclude: Collection[str] | None = None,
) -> None:
    """Like ``transfer`` but renames each top-level key to snake_case.

    Exclusions are matched against the original (unrenamed) key.
    """
    _transfer(target, source, exclude, to_snake_case)


def transfer_value(target: dict[str, Any], key: str, value: Any) -> None:
    """Assign ``target[key] = value`` unless ``value`` is None."""
    if value is not None:
        target[key] = value


def transfer_value_as_snake_case(target: dict[str, Any], key: str, value: Any) -> None:
    """Like ``transfer_value`` with ``key`` converted to snake_case."""
    if value is not None:
        target[to_snake_case(key)] = value


def remove_none(value: Any) -> Any:
    """Recursively drop None values from nested dicts (lists are walked too).

    Mutates and returns ``value``.
    """
    if isinstance(value, list):
        for item in value:
            remove_none(item)
    elif isinstance(value, dict):
        for key in [k for k, v in value.items() if v is None]:
            del value[key]
        for item in value.values():
            remove_none(item)
    return value
