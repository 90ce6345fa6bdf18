"""
Date coercion for cells bound to date columns.

Every helper here is total: a value that cannot be read as a calendar
date becomes None, never an exception.
"""

import math
import re
from datetime import date, datetime, timedelta
from typing import Any

from caseload.utils.logging import get_logger

log = get_logger(__name__)

# Spreadsheet epoch: serial 1 == 1899-12-31, serial 45000 == 2023-03-15
SPREADSHEET_EPOCH = date(1899, 12, 30)

# Plausible serial range (up to roughly year 2173)
MAX_SPREADSHEET_SERIAL = 100_000

_DAY_FIRST = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DATE_TOKEN_END = re.compile(r"[\sT]")


def from_spreadsheet_serial(serial: float) -> date | None:
    """
    Convert a spreadsheet date serial to a calendar date.

    The fractional part (time of day) is discarded.

    Args:
        serial: Day count from the 1899-12-30 epoch.

    Returns:
        Calendar date, or None if the serial is out of range.
    """
    if isinstance(serial, bool):
        return None
    try:
        value = float(serial)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or not 0 < value < MAX_SPREADSHEET_SERIAL:
        return None
    return SPREADSHEET_EPOCH + timedelta(days=math.floor(value))


def parse_date_string(text: str) -> date | None:
    """
    Parse a date string, day-first with slashes, then ISO with dashes.

    Only the leading date token is read, so values carrying a time of
    day ("9/08/2024 1:39:49", "2024-03-15T10:00:00") are accepted.

    Args:
        text: Raw cell text.

    Returns:
        Calendar date, or None if neither format matches.
    """
    token = _DATE_TOKEN_END.split(text.strip(), maxsplit=1)[0]
    if not token:
        return None

    # Day-first is tried before ISO; "03/04/2024" is the 3rd of April
    match = _DAY_FIRST.match(token)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    match = _ISO.match(token)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    """Build a date, returning None for impossible calendar values."""
    try:
        return date(year, month, day)
    except ValueError:
        return None


def coerce_date(value: Any) -> str | None:
    """
    Coerce a raw cell into an ISO calendar date string.

    Handles native dates/timestamps, spreadsheet serials and date
    strings. Anything else, including malformed input, becomes None.

    Args:
        value: Raw cell from a Row Source.

    Returns:
        "YYYY-MM-DD" string or None.
    """
    try:
        result: date | None
        if value is None:
            result = None
        elif isinstance(value, datetime):
            result = value.date()
        elif isinstance(value, date):
            result = value
        elif isinstance(value, bool):
            result = None
        elif isinstance(value, (int, float)):
            result = from_spreadsheet_serial(value)
        elif isinstance(value, str):
            result = parse_date_string(value)
        else:
            result = None
    except (ValueError, TypeError, OverflowError) as e:
        log.debug("Date coercion failed", value=repr(value), error=str(e))
        result = None

    return result.isoformat() if result is not None else None
