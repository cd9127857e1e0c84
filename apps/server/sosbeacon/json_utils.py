"""Shared JSON helpers.

Non-finite-float sanitisation for everything the agent serialises (the
WebSocket projection, persisted lists, upload payloads) plus tolerant
parsing for persisted data that may have been corrupted.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "safe_json_dumps",
    "safe_json_loads",
    "sanitize_for_json",
    "utc_now_iso",
]

LOGGER = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def sanitize_for_json(obj: Any) -> tuple[Any, bool]:
    """Recursively replace non-finite floats (NaN, Inf, -Inf) with ``None``.

    Numpy scalars and arrays (from the simulated device) are converted to
    native Python values.  Returns the sanitised object and whether any
    non-finite value was encountered.
    """
    found_non_finite = False

    def _walk(v: Any) -> Any:
        nonlocal found_non_finite
        if hasattr(v, "tolist") and hasattr(v, "ndim"):
            v = v.tolist()
        elif hasattr(v, "item"):
            v = v.item()
        if isinstance(v, float):
            if math.isfinite(v):
                return v
            found_non_finite = True
            return None
        if isinstance(v, dict):
            return {k: _walk(val) for k, val in v.items()}
        if isinstance(v, (list, tuple)):
            return [_walk(item) for item in v]
        return v

    cleaned = _walk(obj)
    return cleaned, found_non_finite


def safe_json_dumps(value: Any, *, compact: bool = True) -> str:
    cleaned, _ = sanitize_for_json(value)
    if compact:
        return json.dumps(cleaned, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    return json.dumps(cleaned, indent=2, ensure_ascii=False, allow_nan=False)


def safe_json_loads(value: str | None, *, context: str) -> Any | None:
    """Deserialise a JSON string, returning ``None`` on empty/invalid input.

    *context* names the source in the warning::

        safe_json_loads(raw, context="recordings list")
    """
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        LOGGER.warning("Skipping invalid JSON payload while reading %s", context, exc_info=True)
        return None
