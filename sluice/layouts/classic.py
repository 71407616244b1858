"""Flat ``jitsu-legacy`` layout and the ``passthrough`` layout."""

from collections.abc import Mapping
from typing import Any

from ..domain import INTERNAL_PARAMETERS, EventPayload, LayoutConfig, TableNameParameter
from ..transfer import remove_none, transfer
from .registry import LayoutResult, TransformedRow, register_layout

DEFAULT_TABLE = "events"

# page-level properties that already have dedicated classic columns
_PAGE_PROPERTIES = ("url", "title", "referrer", "search", "host", "path", "width", "height")


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _dig(source: Mapping[str, Any], *path: str) -> Any:
    value: Any = source
    for key in path:
        value = _mapping(value).get(key)
        if value is None:
            return None
    return value


def _coalesce(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def anonymize_ip(ip: str | None) -> str | None:
    """Zero the last octet of an IPv4 address; other formats yield None."""
    if not ip:
        return None
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.{parts[2]}.0"
    return None


def _dimensions(screen: Mapping[str, Any], width: str, height: str) -> str | None:
    if not screen:
        return None
    return f"{screen.get(width) or 0}x{screen.get(height) or 0}"


def _location(geo: Mapping[str, Any]) -> dict[str, Any] | None:
    if not geo:
        return None
    return {
        "city": _dig(geo, "city", "name"),
        "continent": _dig(geo, "continent", "code"),
        "country": _dig(geo, "country", "code"),
        "country_name": _dig(geo, "country", "name"),
        "latitude": _dig(geo, "location", "latitude"),
        "longitude": _dig(geo, "location", "longitude"),
        "region": _dig(geo, "region", "code"),
        "zip": _dig(geo, "postalCode", "code"),
        "timezone": _dig(geo, "location", "timezone"),
        "autonomous_system_number": _dig(geo, "provider", "as", "num"),
        "autonomous_system_organization": _dig(geo, "provider", "as", "name"),
        "isp": _dig(geo, "provider", "isp"),
        "domain": _dig(geo, "provider", "domain"),
    }


def _parsed_user_agent(ua: Mapping[str, Any]) -> dict[str, Any] | None:
    if not ua:
        return None
    return {
        "os_family": _dig(ua, "os", "name"),
        "os_version": _dig(ua, "os", "version"),
        "ua_family": _dig(ua, "browser", "name"),
        "ua_version": _dig(ua, "browser", "version"),
        "device_brand": _dig(ua, "device", "vendor"),
        "device_type": _dig(ua, "device", "type"),
        "device_model": _dig(ua, "device", "model"),
        "bot": ua.get("bot"),
    }


def to_classic(event: EventPayload, user_agent: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Flatten an analytics event into the classic single-row format.

    Args:
        event: The event to flatten.
        user_agent: Parsed user agent (os/browser/device), used when the event
            carries no ``parsed_ua`` of its own.

    Returns:
        A new flat mapping without None values.

    Examples:
        >>> row = to_classic({"type": "page", "messageId": "1", "userId": "u1"})
        >>> row["event_type"], row["eventn_ctx_event_id"], row["user"]
        ('page', '1', {'id': 'u1'})
    """
    context = _mapping(event.get("context"))
    properties = _mapping(event.get("properties"))
    page = _mapping(context.get("page"))
    client_ids = _mapping(context.get("clientIds"))
    context_traits = _mapping(context.get("traits"))
    traits = _mapping(event.get("traits"))
    screen = _mapping(context.get("screen"))

    click_id: dict[str, Any] = {}
    transfer(click_id, client_ids, ["ga4", "fbp", "fbc"])

    ids: dict[str, Any] = {}
    if client_ids:
        ids = remove_none(
            {
                "ga": _dig(client_ids, "ga4", "clientId"),
                "fbp": client_ids.get("fbp"),
                "fbc": client_ids.get("fbc"),
            }
        )

    user = remove_none(
        {
            "id": event.get("userId"),
            "anonymous_id": event.get("anonymousId"),
            "email": context_traits.get("email") or traits.get("email") or None,
            "name": context_traits.get("name") or traits.get("name") or None,
        }
    )
    transfer(user, context_traits, ["email", "name"])
    transfer(user, traits, ["email", "name"])

    classic: dict[str, Any] = {
        TableNameParameter: event.get(TableNameParameter),
        "anon_ip": anonymize_ip(context.get("ip")),
        "api_key": event.get("writeKey") or "",
        "click_id": click_id or None,
        "doc_encoding": _coalesce(page.get("encoding"), properties.get("encoding")),
        "doc_host": _coalesce(page.get("host"), properties.get("host")),
        "doc_path": _coalesce(page.get("path"), properties.get("path")),
        "doc_search": _coalesce(page.get("search"), properties.get("search")),
        "eventn_ctx_event_id": event.get("messageId"),
        "event_type": event.get("event") or event.get("type"),
        "local_tz_offset": _coalesce(page.get("timezoneOffset"), properties.get("timezoneOffset")),
        "page_title": page.get("title"),
        "referer": page.get("referrer"),
        "screen_resolution": _dimensions(screen, "width", "height"),
        "source_ip": context.get("ip"),
        "src": properties.get("src") or "jitsu",
        "url": page.get("url") or properties.get("url"),
        "user": user or None,
        "location": _location(_mapping(context.get("geo"))),
        "ids": ids or None,
        "parsed_ua": event.get("parsed_ua") or _parsed_user_agent(_mapping(user_agent)),
        "user_agent": context.get("userAgent"),
        "user_language": context.get("locale"),
        "utc_time": event.get("timestamp"),
        "_timestamp": event.get("receivedAt"),
        "utm": context.get("campaign"),
        "vp_size": _dimensions(screen, "innerWidth", "innerHeight"),
    }
    if event.get("type") == "track":
        transfer(classic, properties)
    else:
        transfer(classic, properties, _PAGE_PROPERTIES)

    return remove_none(classic)


def _omit_internal(source: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in source.items() if k not in INTERNAL_PARAMETERS}


@register_layout("jitsu-legacy")
def jitsu_legacy(event: EventPayload, config: LayoutConfig) -> LayoutResult:
    flat = to_classic(event)
    return TransformedRow(
        event=_omit_internal(flat),
        table=event.get(TableNameParameter) or DEFAULT_TABLE,
    )


@register_layout("passthrough")
def passthrough(event: EventPayload, config: LayoutConfig) -> LayoutResult:
    return TransformedRow(
        event=_omit_internal(event),
        table=event.get(TableNameParameter) or DEFAULT_TABLE,
    )
