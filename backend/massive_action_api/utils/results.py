"""Normalisation of the host's loosely typed action results."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx


def as_count(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def flatten_messages(raw: Any) -> list[str]:
    """Host messages arrive as a list, a severity -> list mapping, or a string."""
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw] if raw else []
    if isinstance(raw, Mapping):
        raw = list(raw.values())
    messages: list[str] = []
    for entry in raw:
        if isinstance(entry, (list, tuple, Mapping)):
            messages.extend(flatten_messages(entry))
        elif entry is not None and entry != "":
            messages.append(str(entry))
    return messages


def error_message(response: httpx.Response) -> str | None:
    """The ``error`` field of a JSON error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None
