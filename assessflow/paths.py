"""Dotted-path lookup into nested response payloads."""

from __future__ import annotations

from typing import Any, Mapping


class _Undefined:
    """Marker for a path that does not resolve to any value."""

    _instance = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:  # pragma: no cover - simple formatting
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


def resolve(document: Any, path: str) -> Any:
    """Walk ``document`` one dot-separated key at a time.

    Returns :data:`UNDEFINED` when any segment is missing or an intermediate
    value is absent or not a mapping. A stored ``None`` at the final segment
    is returned as ``None``. Array indices and wildcards are not supported.
    Never raises.
    """
    if not isinstance(path, str) or not path:
        return UNDEFINED
    current: Any = document
    for key in path.split("."):
        if not isinstance(current, Mapping) or key not in current:
            return UNDEFINED
        current = current[key]
    return current


__all__ = ["UNDEFINED", "resolve"]
