"""Data layouts: map one event to destination row(s).

Built-in layouts (registered on import):
- ``segment``: one table per event type, named track events get their own table
- ``segment-single-table``: everything in ``events`` with a ``type`` column
- ``jitsu-legacy``: classic flat row
- ``passthrough``: the event as-is
"""

from . import classic, segment  # noqa: F401  (registers the built-in layouts)
from .classic import anonymize_ip, to_classic
from .registry import (
    LayoutImpl,
    LayoutRegistry,
    LayoutResult,
    TransformedRow,
    default_registry,
    iter_rows,
    register_layout,
    transform,
)
from .segment import plural, segment_layout

__all__ = [
    "LayoutImpl",
    "LayoutRegistry",
    "LayoutResult",
    "TransformedRow",
    "default_registry",
    "iter_rows",
    "register_layout",
    "transform",
    "segment_layout",
    "plural",
    "to_classic",
    "anonymize_ip",
]
