"""
Date helpers for the "dd.mm.yyyy" strings used as commit query keys.
"""
import re
from datetime import date
from typing import Optional

from errors import InvalidDateError

DATE_FORMAT = "%d.%m.%Y"

_FULL_YEAR_RE = re.compile(r"(\d{2})\.(\d{2})\.(\d{4})")
_SHORT_YEAR_RE = re.compile(r"(\d{2})\.(\d{2})\.(\d{2})(?!\d)")


def parse_date(date_string: str) -> date:
    """Parse a "dd.mm.yyyy" string, raising InvalidDateError on anything else."""
    match = re.fullmatch(r"\s*(\d{1,2})\.(\d{1,2})\.(\d{4})\s*", date_string or '')
    if not match:
        raise InvalidDateError(f"Invalid date '{date_string}', expected dd.mm.yyyy")
    day, month, year = (int(g) for g in match.groups())
    try:
        return date(year, month, day)
    except ValueError as ex:
        raise InvalidDateError(f"Invalid date '{date_string}': {ex}") from ex


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date_from_text(text: str) -> Optional[str]:
    """
    Extract a "dd.mm.yyyy" date from free text such as "27.01.26, Tuesday".
    Four-digit years win; two-digit years are read as 20yy. Returns None when nothing matches.
    """
    if not text:
        return None
    match = _FULL_YEAR_RE.search(text)
    if match:
        return f"{match.group(1)}.{match.group(2)}.{match.group(3)}"
    match = _SHORT_YEAR_RE.search(text)
    if match:
        return f"{match.group(1)}.{match.group(2)}.20{match.group(3)}"
    return None


def today_string() -> str:
    return format_date(date.today())
