"""Text helpers shared by the field extractor and the entity resolver."""

from __future__ import annotations

from typing import Any

MULTI_VALUE_SEPARATOR = ";"


def clean(value: Any) -> str:
    """Return *value* as a trimmed string; ``None`` becomes ``""``."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def split_multi_value(value: str | list[Any] | None) -> list[str]:
    """Split a multi-valued field into trimmed, non-empty parts.

    A string is split on ``;`` only.  A list (JSON array field) is taken
    element by element and never re-split, so ``["a;b"]`` stays one part.
    """
    if value is None:
        return []
    if isinstance(value, list):
        parts = [clean(item) for item in value]
    else:
        parts = [part.strip() for part in str(value).split(MULTI_VALUE_SEPARATOR)]
    return [part for part in parts if part]
