"""Table-driven registry of data layouts.

A layout is a pure function that maps one event to one or more rows, each
bound for a destination table. Layouts are looked up by id, so a new layout
is added by registering a function; existing layouts are never touched.
"""

import copy
import logging
from collections.abc import Callable, Iterator
from typing import Any

from pydantic import BaseModel

from ..context import log_extra
from ..domain import (
    DEFAULT_LAYOUT,
    AnalyticsEvent,
    ConfigurationError,
    EventPayload,
    LayoutConfig,
    as_payload,
)

LOGGER = logging.getLogger(__name__)


class TransformedRow(BaseModel):
    """A destination row and the table it belongs to."""

    event: dict[str, Any]
    """Flattened row."""

    table: str
    """Destination table name."""


LayoutResult = TransformedRow | list[TransformedRow]
LayoutImpl = Callable[[EventPayload, LayoutConfig], LayoutResult]


class LayoutRegistry:
    """Registry of layout implementations keyed by layout id.

    Examples:
        >>> registry = LayoutRegistry()
        >>> @registry.register("raw")
        ... def raw(event, config):
        ...     return TransformedRow(event=event, table="raw")
        >>> registry.transform({"type": "page"}, LayoutConfig(data_layout="raw")).table
        'raw'
    """

    def __init__(self) -> None:
        self._layouts: dict[str, LayoutImpl] = {}

    def register(
        self, layout_id: str, impl: LayoutImpl | None = None
    ) -> Callable[[LayoutImpl], LayoutImpl]:
        """Register a layout, usable directly or as a decorator.

        Args:
            layout_id: Identifier selected by ``LayoutConfig.data_layout``.
            impl: The layout function. When omitted a decorator is returned.

        Raises:
            ValueError: If ``layout_id`` is already registered.
        """

        def decorator(func: LayoutImpl) -> LayoutImpl:
            if layout_id in self._layouts:
                raise ValueError(f"Layout {layout_id!r} is already registered")
            self._layouts[layout_id] = func
            return func

        if impl is not None:
            decorator(impl)
        return decorator

    def get(self, layout_id: str) -> LayoutImpl:
        """Look up a layout by id.

        Raises:
            ConfigurationError: If no layout is registered under ``layout_id``.
        """
        try:
            return self._layouts[layout_id]
        except KeyError:
            raise ConfigurationError(f"Unknown data layout: {layout_id}") from None

    def __contains__(self, layout_id: object) -> bool:
        return layout_id in self._layouts

    def __iter__(self) -> Iterator[str]:
        return iter(self._layouts)

    def apply(
        self, layout_id: str, event: "AnalyticsEvent | EventPayload", config: LayoutConfig
    ) -> LayoutResult:
        """Run the layout ``layout_id`` on a private copy of ``event``."""
        impl = self.get(layout_id)
        payload = copy.deepcopy(as_payload(event))
        result = impl(payload, config)
        LOGGER.debug(
            "Transformed event",
            extra=log_extra(
                message_id=payload.get("messageId"),
                layout=layout_id,
                tables=[row.table for row in iter_rows(result)],
            ),
        )
        return result

    def transform(
        self, event: "AnalyticsEvent | EventPayload", config: LayoutConfig | None = None
    ) -> LayoutResult:
        """Transform ``event`` with the layout selected by ``config``."""
        config = config or LayoutConfig()
        return self.apply(config.data_layout, event, config)


def iter_rows(result: LayoutResult) -> list[TransformedRow]:
    """Normalize a layout result to a list of rows."""
    if isinstance(result, list):
        return result
    return [result]


default_registry = LayoutRegistry()


def register_layout(layout_id: str) -> Callable[[LayoutImpl], LayoutImpl]:
    """Decorator registering a layout in the default registry."""
    return default_registry.register(layout_id)


def transform(
    event: "AnalyticsEvent | EventPayload",
    config: LayoutConfig | None = None,
    registry: LayoutRegistry | None = None,
) -> LayoutResult:
    """Map one event to destination row(s).

    The input is deep-copied before the layout runs, so the result never
    shares mutable state with ``event`` and repeated calls yield equal rows.

    Args:
        event: The event to transform.
        config: Layout selection; defaults to ``segment-single-table``.
        registry: Registry to use instead of the default one.

    Returns:
        One row, or an ordered list of rows.

    Raises:
        ConfigurationError: If the configured layout is not registered.

    Examples:
        >>> row = transform({"type": "page", "messageId": "1"})
        >>> row.table
        'events'
    """
    return (registry or default_registry).transform(event, config)


__all__ = [
    "DEFAULT_LAYOUT",
    "LayoutImpl",
    "LayoutRegistry",
    "LayoutResult",
    "TransformedRow",
    "default_registry",
    "iter_rows",
    "register_layout",
    "transform",
]
