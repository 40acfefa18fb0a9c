"""Helpers for coercing stored values and consistent user-facing date formatting."""
from __future__ import annotations

import math
from datetime import date, datetime, time
from typing import Any, Iterable, Optional

from dateutil import parser as date_parser

DISPLAY_DATE_FORMAT = "%m/%d/%Y"
DISPLAY_DATETIME_FORMAT = "%m/%d/%Y %I:%M %p"
_STRING_PARSE_PATTERNS: Iterable[str] = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    DISPLAY_DATE_FORMAT,
)


def _coerce_to_datetime(value: Any, lenient: bool = False) -> datetime | None:
    """Attempt to normalise incoming date-like values to a datetime.

    Strings must be ISO 8601 or match one of ``_STRING_PARSE_PATTERNS``.
    With ``lenient`` set, anything else is handed to dateutil; only display
    formatting asks for that, never validation of user input.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass
        for pattern in _STRING_PARSE_PATTERNS:
            try:
                return datetime.strptime(text, pattern)
            except ValueError:
                continue
        if lenient:
            try:
                return date_parser.parse(text)
            except (ValueError, OverflowError):
                return None
        return None
    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a date value if possible; free-form strings such as ``"March"`` give None."""

    coerced = _coerce_to_datetime(value)
    return coerced.date() if coerced is not None else None


def parse_float(value: Any) -> Optional[float]:
    """Coerce a stored numeric field; blank, non-numeric and non-finite values give None."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def format_display_date(value: Any) -> str:
    """Format a value as mm/dd/yyyy or return an empty string."""
    coerced = _coerce_to_datetime(value, lenient=True)
    if coerced is None:
        return "" if value in (None, "") else str(value)
    return coerced.strftime(DISPLAY_DATE_FORMAT)


def format_display_datetime(value: Any) -> str:
    """Format a value as mm/dd/yyyy hh:mm AM/PM or return an empty string."""
    coerced = _coerce_to_datetime(value, lenient=True)
    if coerced is None:
        return "" if value in (None, "") else str(value)
    return coerced.strftime(DISPLAY_DATETIME_FORMAT)


__all__ = [
    "format_display_date",
    "format_display_datetime",
    "parse_date",
    "parse_float",
]
