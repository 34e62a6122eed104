"""Size-reduction heuristic applied to large cache payloads.

This is not byte-level compression: payloads whose JSON form exceeds the
threshold have empty fields stripped so the stored form is smaller. Readers of
cached data must therefore treat optional fields as optional. Callers that
need field presence preserved pass ``compress=False`` to ``CacheStore.set``.
"""
from __future__ import annotations

from typing import Any, Tuple

from .common import serialize_data

DEFAULT_COMPRESSION_THRESHOLD = 10 * 1024


def strip_empty_fields(value: Any) -> Any:
    """Recursively drop dict keys whose value is None or an empty string."""
    if isinstance(value, dict):
        return {
            key: strip_empty_fields(item)
            for key, item in value.items()
            if item is not None and item != ""
        }
    if isinstance(value, list):
        return [strip_empty_fields(item) for item in value]
    return value


def compress_value(value: Any, threshold: int = DEFAULT_COMPRESSION_THRESHOLD) -> Tuple[Any, bool]:
    """Apply the heuristic when the serialized size exceeds ``threshold``.

    Args:
        value: JSON-serializable payload
        threshold: Size in characters above which empty fields are stripped

    Returns:
        ``(value, compressed)`` where ``compressed`` tells whether stripping ran
    """
    if not isinstance(value, (dict, list)):
        return value, False
    if len(serialize_data(value)) <= threshold:
        return value, False
    return strip_empty_fields(value), True
