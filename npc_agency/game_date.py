"""In-game calendar: "DDD-YYYY" dates and hour arithmetic.

The campaign calendar has 365 days per year, no months and no leap years.
All durations are expressed in hours; dates only have day resolution, so
anything needing sub-day precision tracks hours separately.

    "015-1105"  → day 15 of year 1105
"""

from __future__ import annotations

import re
from typing import NamedTuple

DAYS_PER_YEAR = 365

_DATE_RE = re.compile(r"^(\d{3})-(\d{4})$")


class GameDate(NamedTuple):
    day: int
    year: int


def parse_date(value: object) -> GameDate | None:
    """Parse "DDD-YYYY". Returns None for anything malformed."""
    if not isinstance(value, str):
        return None
    match = _DATE_RE.match(value)
    if not match:
        return None
    return GameDate(day=int(match[1]), year=int(match[2]))


def format_date(day: int, year: int) -> str:
    return f"{day:03d}-{year}"


def _ordinal(date: GameDate) -> int:
    return date.year * DAYS_PER_YEAR + date.day


def hours_between(a: str | None, b: str | None) -> int:
    """Hours from `a` to `b` (negative if `b` is earlier).

    An unparseable date on either side counts as zero offset.
    """
    start = parse_date(a)
    end = parse_date(b)
    if start is None or end is None:
        return 0
    return (_ordinal(end) - _ordinal(start)) * 24


def add_hours(start: str | None, hours: float) -> str | None:
    """Return the date `hours` after `start`, truncated to whole days.

    Absent start → None. A malformed start is returned unchanged.
    """
    if not start:
        return None
    parsed = parse_date(start)
    if parsed is None:
        return start

    day = parsed.day + int(hours // 24)
    year = parsed.year
    while day > DAYS_PER_YEAR:
        day -= DAYS_PER_YEAR
        year += 1
    while day < 1:
        day += DAYS_PER_YEAR
        year -= 1
    return format_date(day, year)


def add_days(start: str | None, days: int) -> str | None:
    return add_hours(start, days * 24)
