"""Offset pagination helpers for page/limit query parameters."""

from __future__ import annotations

import math

DEFAULT_PAGE = 1
# Largest value a signed 64-bit SQL integer can bind.
MAX_SQL_INT = 2**63 - 1


def parse_positive_int(raw: str | None, default: int) -> int:
    """Parse a query value leniently; anything non-numeric, below 1 or past 64 bits falls back to `default`."""
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if 1 <= value <= MAX_SQL_INT else default


def page_offset(page: int, limit: int) -> int:
    return min((page - 1) * limit, MAX_SQL_INT)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit)
