from __future__ import annotations

import math
from typing import Any, Optional, Union

Number = Union[int, float]


def as_number(value: Any) -> Optional[Number]:
    """Return ``value`` as a finite number, or ``None`` when it is not numeric.

    Booleans and blank strings are not numbers.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def coerce_numeric_string(value: Any) -> Any:
    """Convert a numeric string to a number; anything else is returned unchanged."""
    if not isinstance(value, str):
        return value
    number = as_number(value)
    return value if number is None else number
