"""CSL ``date-parts`` handling for issue dates."""

from __future__ import annotations

from datetime import date
from typing import Any


def _pad(n: Any) -> str:
    return f"{int(n):02d}"


def first_date_parts(items: list[dict[str, Any]]) -> list[Any] | None:
    """Return the first non-empty ``issued.date-parts[0]`` among *items*."""
    for item in items:
        if not isinstance(item, dict):
            continue
        issued = item.get("issued")
        if not isinstance(issued, dict):
            continue
        parts = issued.get("date-parts")
        if not parts or not isinstance(parts, list) or not parts[0]:
            continue
        return parts[0]
    return None


def date_parts_to_string(parts: list[Any]) -> str:
    """``[2020]`` -> ``"2020"``, ``[2020, 3]`` -> ``"2020-03"``, and so on.

    Missing month and day are left out rather than defaulted.
    """
    out = str(parts[0])
    if len(parts) > 1 and parts[1]:
        out += f"-{_pad(parts[1])}"
        if len(parts) > 2 and parts[2]:
            out += f"-{_pad(parts[2])}"
    return out


def date_parts_to_date(parts: list[Any]) -> date:
    """Build a calendar date, defaulting a missing month or day to 1."""
    month = int(parts[1]) if len(parts) > 1 and parts[1] else 1
    day = int(parts[2]) if len(parts) > 2 and parts[2] else 1
    return date(int(parts[0]), month, day)
