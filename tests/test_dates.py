"""Unit tests for date helpers."""
from datetime import date
from types import SimpleNamespace

import pytest

from processor.dates import (
    extract_date,
    is_upcoming,
    is_within_days,
    parse_date,
    strip_date_tokens,
)


TODAY = date(2026, 3, 1)


@pytest.mark.parametrize("title,expected", [
    ("Chimera Golf Club 4.4.26", "4.4.26"),
    ("Valley Oaks GC 1.24.26", "1.24.26"),
    ("Event with Jan 24 date", "Jan 24"),
    ("Event with Feb 08 date", "Feb 08"),
    ("Event with 02/15/26 date", "02/15/26"),
    ("Spring Open March 14", "March 14"),
    ("Desert Classic Jan 24th", "Jan 24"),
    ("Shootout Sept 3rd", "Sept 3"),
    ("No date here", ""),
])
def test_extract_date(title, expected):
    """Test embedded date extraction from titles."""
    assert extract_date(title) == expected


def test_extract_date_prefers_dotted_dates():
    """Test that the dotted pattern wins over later pattern classes."""
    assert extract_date("Jan 24 qualifier 1.24.26") == "1.24.26"


def test_extract_date_ignores_month_inside_word():
    """Test that month abbreviations inside words are not dates."""
    assert extract_date("Marriott 12 Oaks") == ""


def test_strip_date_tokens():
    """Test that every date-shaped substring is removed."""
    stripped = strip_date_tokens("open 4.4.26 and jan 24 or 02/15/26")

    assert "4.4.26" not in stripped
    assert "jan 24" not in stripped
    assert "02/15/26" not in stripped
    assert stripped.split() == ["open", "and", "or"]


class TestParseDate:
    """Test cases for parse_date."""

    @pytest.mark.parametrize("text,expected", [
        ("Mar 13 2026", date(2026, 3, 13)),
        ("March 13 2026", date(2026, 3, 13)),
        ("Mar 13, 2026", date(2026, 3, 13)),
        ("4.4.26", date(2026, 4, 4)),
        ("04.04.2026", date(2026, 4, 4)),
        ("02/15/26", date(2026, 2, 15)),
        ("02/15/2026", date(2026, 2, 15)),
        ("Jan 24", date(2026, 1, 24)),
    ])
    def test_parse_supported_formats(self, text, expected):
        """Test the supported date text formats."""
        assert parse_date(text, TODAY) == expected

    def test_parse_yearless_leap_day(self):
        """Test that Feb 29 parses in a leap reference year."""
        assert parse_date("Feb 29", date(2028, 1, 1)) == date(2028, 2, 29)

    @pytest.mark.parametrize("text", ["", "   ", "TBD", "Spring 2026"])
    def test_parse_unrecognized_returns_none(self, text):
        """Test that unparseable text returns None."""
        assert parse_date(text, TODAY) is None


class TestEventDatePredicates:
    """Test cases for is_upcoming and is_within_days."""

    def test_is_upcoming(self):
        """Test past, future and unparseable dates."""
        assert is_upcoming(SimpleNamespace(date_text="Mar 13 2026"), TODAY)
        assert not is_upcoming(SimpleNamespace(date_text="Feb 13 2026"), TODAY)
        assert is_upcoming(SimpleNamespace(date_text="TBD"), TODAY)

    def test_is_within_days(self):
        """Test the look-ahead window."""
        soon = SimpleNamespace(date_text="Mar 10 2026")
        later = SimpleNamespace(date_text="Jun 10 2026")

        assert is_within_days(soon, 30, TODAY)
        assert not is_within_days(later, 30, TODAY)
        assert is_within_days(later, 0, TODAY)
        assert is_within_days(SimpleNamespace(date_text=""), 30, TODAY)
