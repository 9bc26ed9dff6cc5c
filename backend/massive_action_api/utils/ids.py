"""Parsing and normalisation of item IDs and item type names."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

_SEPARATORS = re.compile(r"[\s,]+")


def parse_ids(text: str | None) -> list[int]:
    """Parse comma/space/newline separated IDs.

    Non-numeric tokens and non-positive numbers are dropped; duplicates are
    collapsed keeping the first occurrence.
    """
    ids: list[int] = []
    seen: set[int] = set()
    for token in _SEPARATORS.split(text or ""):
        match = re.match(r"[+-]?\d+", token)
        if not match:
            continue
        value = int(match.group())
        if value > 0 and value not in seen:
            seen.add(value)
            ids.append(value)
    return ids


def normalize_ids(values: Iterable[Any]) -> list[int]:
    """Coerce an ID collection to distinct positive ints, first occurrence wins.

    Raises ``ValueError`` on anything that is not a positive integer.
    """
    ids: list[int] = []
    seen: set[int] = set()
    for raw in values:
        if isinstance(raw, bool):
            raise ValueError(f"Invalid item id: {raw!r}")
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid item id: {raw!r}") from None
        if value <= 0 or (isinstance(raw, float) and not raw.is_integer()):
            raise ValueError(f"Invalid item id: {raw!r}")
        if value not in seen:
            seen.add(value)
            ids.append(value)
    return ids


def short_type_name(itemtype: str) -> str:
    """Strip any namespace prefix: ``Glpi\\Asset\\Computer`` -> ``Computer``."""
    return re.sub(r"^.*\\", "", itemtype)
