from __future__ import annotations

import math
from typing import Any

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def coerce_bool(value: Any, *, default: bool = False) -> bool:
    """Coerce a loosely-typed value into a boolean.

    Settings arrive from YAML and environment variables, where "false" and "0"
    are strings. Unknown strings fall back to `default` so bool("false") never
    turns into True.
    """
    if value is None:
        return bool(default)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return bool(default)
        return value != 0
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
        return bool(default)
    return bool(value)


def coerce_float(value: Any, *, default: float, minimum: float = 0.0) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return float(default)
    if math.isnan(v) or math.isinf(v):
        return float(default)
    return max(minimum, v)


def coerce_int(value: Any, *, default: int, minimum: int = 0) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return int(default)
    return max(minimum, v)
