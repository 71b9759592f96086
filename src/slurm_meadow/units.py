"""Memory unit and calendar date normalization for scheduler output."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional, Union

logger = logging.getLogger(__name__)

UNITS_TO_MEGS = {
    "K": 1.0 / 1024,
    "M": 1.0,
    "G": 1024.0,
    "T": 1024.0 * 1024,
}

# The Gregorian weekday/date pattern repeats every 28 years.
YEAR_LOOKBACK = 28

WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

YEARLESS_FORMAT = "%b %d %H:%M:%S"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

RE_MEMORY = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([A-Za-z]?)\s*$")


def normalize_memory(value: Union[float, int, str], unit_suffix: Optional[str] = None) -> float:
    """Convert a memory amount to megabytes.

    Without a recognized unit suffix the value is taken to be in kilobytes,
    which is what sacct reports by default.
    """
    value = float(value)
    unit = (unit_suffix or "").strip().upper()
    if unit not in UNITS_TO_MEGS:
        return value / 1024
    return value * UNITS_TO_MEGS[unit]


def parse_memory_to_megs(text: Optional[str]) -> Optional[float]:
    """Parse strings like '2048K', '1.5G' or '734' to megabytes."""
    if not text:
        return None
    m = RE_MEMORY.match(text)
    if not m:
        return None
    return normalize_memory(m.group(1), m.group(2))


def recover_datetime(
    weekday: str,
    yearless: str,
    real_year: Optional[Union[int, str]] = None,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Turn 'Jan 03 10:15:00' plus a weekday name into 'YYYY-MM-DD HH:MM:SS'.

    When the year is not known, the most recent year (counting back from the
    current one) in which the date falls on ``weekday`` is used. Returns None
    if no year within the lookback window matches.
    """
    fmt = f"{YEARLESS_FORMAT} %Y"
    if real_year:
        return datetime.strptime(f"{yearless} {real_year}", fmt).strftime(DATETIME_FORMAT)

    curr_year = (now or datetime.now()).year
    for years_back in range(YEAR_LOOKBACK):
        candidate_year = curr_year - years_back
        try:
            candidate = datetime.strptime(f"{yearless} {candidate_year}", fmt)
        except ValueError:
            # Feb 29 outside a leap year
            continue
        if WEEKDAY_NAMES[candidate.weekday()] == weekday:
            return candidate.strftime(DATETIME_FORMAT)

    logger.debug("could not recover the year of %s %s", weekday, yearless)
    return None
