from datetime import date

import pytest

from salesdesk.core.formatting import format_display_date, format_display_datetime, parse_date, parse_float


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2025-03-18", date(2025, 3, 18)),
        ("2025-03-18 14:30", date(2025, 3, 18)),
        ("2025-03-18T14:30:00Z", date(2025, 3, 18)),
        ("03/18/2025", date(2025, 3, 18)),
        (date(2025, 3, 18), date(2025, 3, 18)),
    ],
)
def test_parse_date_accepts_iso_and_display_formats(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", ["10:00", "March", "4.0", "tomorrow", "", None, 42])
def test_parse_date_rejects_free_form_text(raw):
    assert parse_date(raw) is None


def test_display_formatting():
    assert format_display_date("2025-04-01") == "04/01/2025"
    assert format_display_date(None) == ""
    assert format_display_datetime("2025-06-20T15:30:00+00:00") == "06/20/2025 03:30 PM"


def test_parse_float():
    assert parse_float(" 4.5 ") == 4.5
    assert parse_float(True) is None
    assert parse_float("inf") is None
    assert parse_float("n/a") is None
