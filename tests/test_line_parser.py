"""Unit tests for the state events line parser."""
from datetime import datetime, timezone

import pytest

from scraper.line_parser import DateContext, EventLineParser, parse_line


SOURCE_URL = "https://vgagolf.org/state-events/"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def parser():
    """Create an EventLineParser."""
    return EventLineParser()


class TestDateContext:
    """Test cases for date carry-forward between lines."""

    def test_month_day_year_lines_assemble_active_date(self):
        """Test that a month, day and year on consecutive lines form a date."""
        context = DateContext()

        _, context = parse_line("Mar", context)
        assert context.phase == 'have-month'

        _, context = parse_line("13", context)
        assert context.phase == 'have-month-day'

        _, context = parse_line("2026", context)
        assert context.active_date == "Mar 13 2026"
        assert context.month == ''
        assert context.day == ''
        assert context.phase == 'idle'

    def test_new_month_clears_pending_day(self):
        """Test that a month line resets a previously seen day."""
        context = DateContext()
        _, context = parse_line("Mar", context)
        _, context = parse_line("13", context)
        _, context = parse_line("Apr", context)

        assert context.month == "Apr"
        assert context.day == ''

    def test_day_without_month_is_ignored(self):
        """Test that a bare number does nothing when no month is pending."""
        parsed, context = parse_line("13", DateContext())

        assert parsed is None
        assert context == DateContext()

    def test_year_without_day_is_ignored(self):
        """Test that a year needs both month and day pending."""
        context = DateContext(month="Mar")
        _, context = parse_line("2026", context)

        assert context.active_date == ''
        assert context.month == "Mar"

    def test_bracketed_date_sets_active_date(self):
        """Test that a standalone bracketed date overrides the carried date."""
        context = DateContext(active_date="Mar 13 2026")
        parsed, context = parse_line("[ Apr 2 2026 ]", context)

        assert parsed is None
        assert context.active_date == "Apr 2 2026"

    def test_parse_line_does_not_mutate_context(self):
        """Test that handlers return a new context value."""
        original = DateContext(active_date="Mar 13 2026")
        _, updated = parse_line("NV - Chimera Golf Club - Las Vegas", original)

        assert original.active_date == "Mar 13 2026"
        assert updated.active_date == ''


class TestEventLineParser:
    """Test cases for EventLineParser.parse."""

    def test_parse_bracketed_event_with_city(self, parser):
        """Test a date-prefixed line with state, title and city."""
        events = parser.parse(
            "[Mar 13 2026] UT - Sunbrook Golf Club - St. George",
            SOURCE_URL,
            now=NOW
        )

        assert len(events) == 1
        event = events[0]
        assert event.state == "UT"
        assert event.title == "Sunbrook Golf Club"
        assert event.city == "St. George"
        assert event.date_text == "Mar 13 2026"
        assert event.raw == "UT - Sunbrook Golf Club - St. George"
        assert event.source_url == SOURCE_URL
        assert event.first_seen == NOW

    def test_parse_bracketed_event_without_city(self, parser):
        """Test a date-prefixed line without a city."""
        events = parser.parse("[Feb 13 2026] AZ - Desert Classic Open", SOURCE_URL)

        assert len(events) == 1
        assert events[0].title == "Desert Classic Open"
        assert events[0].city == ''
        assert events[0].date_text == "Feb 13 2026"
        assert events[0].raw == "AZ - Desert Classic Open"

    def test_bracketed_line_with_link_title_is_skipped(self, parser):
        """Test that link-like or short titles are rejected."""
        text = "\n".join([
            "[Feb 13 2026] AZ - https://example.com/register",
            "[Feb 13 2026] AZ - Golf",
        ])

        assert parser.parse(text, SOURCE_URL) == []

    def test_state_event_with_city_uses_title_date(self, parser):
        """Test that a date embedded in the title is used when no context exists."""
        events = parser.parse("NV - Chimera Golf Club 4.4.26 - Las Vegas", SOURCE_URL)

        assert len(events) == 1
        event = events[0]
        assert event.state == "NV"
        assert event.title == "Chimera Golf Club 4.4.26"
        assert event.city == "Las Vegas"
        assert event.date_text == "4.4.26"
        assert event.raw == "NV - Chimera Golf Club 4.4.26 - Las Vegas"

    def test_state_event_without_city(self, parser):
        """Test a state and title line without a city."""
        events = parser.parse("CA - Pebble Beach Championship", SOURCE_URL)

        assert len(events) == 1
        assert events[0].title == "Pebble Beach Championship"
        assert events[0].city == ''
        assert events[0].date_text == ''

    def test_state_event_without_city_rejects_links(self, parser):
        """Test that state lines whose title looks like a link are skipped."""
        text = "\n".join([
            "CA - http://vgagolf.org/join",
            "CA - Club",
        ])

        assert parser.parse(text, SOURCE_URL) == []

    def test_multi_line_date_applies_to_next_event_only(self, parser):
        """Test that the carried date is consumed by one event line."""
        text = "\n".join([
            "Mar",
            "13",
            "2026",
            "TX - Austin Country Club - Austin",
            "TX - Barton Creek Resort - Austin",
        ])

        events = parser.parse(text, SOURCE_URL)

        assert len(events) == 2
        assert events[0].date_text == "Mar 13 2026"
        assert events[1].date_text == ''

    def test_bracketed_date_line_applies_to_next_event(self, parser):
        """Test that a standalone bracketed date is used by the following event."""
        text = "\n".join([
            "[Apr 18 2026]",
            "CA - Torrey Pines 5.1.26 - San Diego",
        ])

        events = parser.parse(text, SOURCE_URL)

        # Context date wins over the date in the title
        assert events[0].date_text == "Apr 18 2026"

    def test_bracketed_event_does_not_consume_active_date(self, parser):
        """Test that date-prefixed events leave the carried date in place."""
        text = "\n".join([
            "[Apr 18 2026]",
            "[May 2 2026] CA - Riviera Country Club - Los Angeles",
            "CA - Torrey Pines - San Diego",
        ])

        events = parser.parse(text, SOURCE_URL)

        assert events[0].date_text == "May 2 2026"
        assert events[1].date_text == "Apr 18 2026"

    def test_rejected_bracketed_line_keeps_active_date(self, parser):
        """Test that a rejected date-prefixed line leaves the carried date alone."""
        text = "\n".join([
            "[Tee]",
            "[Jun 1 2026] NV - Golf",
            "NV - Wolf Creek Golf Club - Mesquite",
        ])

        events = parser.parse(text, SOURCE_URL)

        assert len(events) == 1
        assert events[0].date_text == "Tee"

    def test_furniture_lines_are_discarded(self, parser):
        """Test that page navigation and prose produce no events."""
        text = "\n".join([
            "Home",
            "State Events",
            "Sign up for the newsletter",
            "Copyright 2026 VGA Golf",
            "",
            "   ",
        ])

        assert parser.parse(text, SOURCE_URL) == []

    def test_duplicate_lines_produce_one_event(self, parser):
        """Test that identical lines are merged into a single event."""
        text = "\n".join([
            "NV - Chimera Golf Club 4.4.26 - Las Vegas",
            "NV - Chimera Golf Club 4.4.26 - Las Vegas",
        ])

        events = parser.parse(text, SOURCE_URL)

        assert len(events) == 1

    def test_duplicates_keep_first_occurrence(self, parser):
        """Test that dedup keeps the first line's details."""
        text = "\n".join([
            "[Mar 13 2026] UT - Sunbrook Golf Club - St. George",
            "[Mar 20 2026] UT - Sunbrook Golf Club - St. George",
        ])

        events = parser.parse(text, SOURCE_URL)

        assert len(events) == 1
        assert events[0].date_text == "Mar 13 2026"

    def test_events_keep_document_order(self, parser):
        """Test that output preserves the order lines appear in."""
        text = "\n".join([
            "TX - Austin Country Club - Austin",
            "AZ - Desert Classic Open",
            "CA - Torrey Pines - San Diego",
        ])

        events = parser.parse(text, SOURCE_URL)

        assert [e.state for e in events] == ["TX", "AZ", "CA"]

    def test_parse_is_deterministic(self, parser):
        """Test that parsing the same text twice yields the same IDs."""
        text = "\n".join([
            "NV - Chimera Golf Club 4.4.26 - Las Vegas",
            "[Mar 13 2026] UT - Sunbrook Golf Club - St. George",
            "CA - Pebble Beach Championship",
        ])

        first = [e.event_id for e in parser.parse(text, SOURCE_URL)]
        second = [e.event_id for e in parser.parse(text, SOURCE_URL)]

        assert first == second
        assert len(set(first)) == 3
