"""Line-oriented parser for the VGA Golf state events page text.

The page lists events as lines shaped like ``NV - Chimera Golf Club - Las
Vegas``, optionally prefixed with a bracketed date. Dates may also appear
on their own, either as ``[Mar 13 2026]`` or split across three lines
(month, day, year). A :class:`DateContext` value carries the most recent
date forward until an event line consumes it.
"""
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional, Tuple

from processor.dates import MONTH_NAMES, extract_date
from processor.event_processor import EventProcessor
from processor.models import Event, utc_now

logger = logging.getLogger(__name__)

MONTH_LINE = re.compile(r'^' + MONTH_NAMES + r'$')
DAY_LINE = re.compile(r'^\d{1,2}$')
YEAR_LINE = re.compile(r'^20\d{2}$')

DATE_EVENT_WITH_CITY = re.compile(r'^\[(.*?)\]\s+([A-Z]{2})\s*-\s*(.+?)\s*-\s*(.+)$')
DATE_EVENT_NO_CITY = re.compile(r'^\[(.*?)\]\s+([A-Z]{2})\s*-\s*(.+)$')
BRACKETED_DATE = re.compile(r'^\[(.*?)\]$')
STATE_EVENT_WITH_CITY = re.compile(r'^([A-Z]{2})\s*-\s*(.+?)\s*-\s*(.+)$')
STATE_EVENT_NO_CITY = re.compile(r'^([A-Z]{2})\s*-\s*(.+)$')

MIN_TITLE_LENGTH = 5


@dataclass(frozen=True)
class DateContext:
    """Date state carried from line to line while parsing."""
    month: str = ''
    day: str = ''
    active_date: str = ''

    @property
    def phase(self) -> str:
        """Where the split month/day/year date assembly currently stands."""
        if self.month and self.day:
            return 'have-month-day'
        if self.month:
            return 'have-month'
        if self.active_date:
            return 'idle'
        return 'awaiting-month'


class ParsedLine(NamedTuple):
    """Fields of one event line before identity assignment."""
    state: str
    title: str
    date_text: str
    city: str
    raw: str


Match = Optional[re.Match]
RuleResult = Tuple[Optional[ParsedLine], DateContext]


def _looks_like_noise(title: str) -> bool:
    """Return True for titles that are links or too short to be events."""
    return 'http' in title or len(title) < MIN_TITLE_LENGTH


def _strip_bracket(line: str, bracket: str) -> str:
    """
    Remove a leading bracketed date from a line.

    Args:
        line: Line starting with ``[bracket]``
        bracket: Text captured between the brackets

    Returns:
        Remainder of the line, trimmed
    """
    return line[len(f"[{bracket}]"):].strip()


def _resolve_date(title: str, context: DateContext) -> str:
    """
    Pick the date for an undated event line.

    Args:
        title: Event title, searched when no date is pending
        context: Date context carried from previous lines

    Returns:
        The pending date, else a date found in the title, else ''
    """
    return context.active_date or extract_date(title)


def _match_month(line: str, context: DateContext) -> Match:
    return MONTH_LINE.match(line)


def _match_day(line: str, context: DateContext) -> Match:
    if context.phase not in ('have-month', 'have-month-day'):
        return None
    return DAY_LINE.match(line)


def _match_year(line: str, context: DateContext) -> Match:
    if context.phase != 'have-month-day':
        return None
    return YEAR_LINE.match(line)


def _pattern(regex: re.Pattern) -> Callable[[str, DateContext], Match]:
    """Wrap a compiled regex as a context-free line matcher."""
    def matcher(line: str, context: DateContext) -> Match:
        return regex.match(line)
    return matcher


def _on_month(match: re.Match, line: str, context: DateContext) -> RuleResult:
    """Start a split date; a new month discards any pending day."""
    return None, replace(context, month=line, day='')


def _on_day(match: re.Match, line: str, context: DateContext) -> RuleResult:
    return None, replace(context, day=line)


def _on_year(match: re.Match, line: str, context: DateContext) -> RuleResult:
    """
    Complete a split date.

    Args:
        match: Year line match
        line: The year line
        context: Context holding the pending month and day

    Returns:
        No event, and a context whose active date is "Month Day Year"
    """
    assembled = f"{context.month} {context.day} {line}"
    return None, DateContext(active_date=assembled)


def _on_date_event_with_city(match: re.Match, line: str, context: DateContext) -> RuleResult:
    """
    Build an event from ``[date] XX - Title - City``.

    Args:
        match: Match with groups (date, state, title, city)
        line: The full line
        context: Date context, returned unchanged

    Returns:
        Parsed fields, with the bracket removed from the raw line
    """
    parsed = ParsedLine(
        state=match.group(2),
        title=match.group(3).strip(),
        date_text=match.group(1).strip(),
        city=match.group(4).strip(),
        raw=_strip_bracket(line, match.group(1))
    )
    return parsed, context


def _on_date_event_no_city(match: re.Match, line: str, context: DateContext) -> RuleResult:
    """
    Build an event from ``[date] XX - Title``.

    Args:
        match: Match with groups (date, state, title)
        line: The full line
        context: Date context, returned unchanged

    Returns:
        Parsed fields, or None when the title looks like a link or is too
        short
    """
    title = match.group(3).strip()
    if _looks_like_noise(title):
        logger.debug(f"Skipping bracketed line with link-like title: {line}")
        return None, context
    parsed = ParsedLine(
        state=match.group(2),
        title=title,
        date_text=match.group(1).strip(),
        city='',
        raw=_strip_bracket(line, match.group(1))
    )
    return parsed, context


def _on_bracketed_date(match: re.Match, line: str, context: DateContext) -> RuleResult:
    return None, replace(context, active_date=match.group(1).strip())


def _on_state_event_with_city(match: re.Match, line: str, context: DateContext) -> RuleResult:
    """
    Build an event from ``XX - Title - City``.

    Args:
        match: Match with groups (state, title, city)
        line: The full line
        context: Date context; its active date is consumed

    Returns:
        Parsed fields and a context with the active date cleared
    """
    title = match.group(2).strip()
    parsed = ParsedLine(
        state=match.group(1),
        title=title,
        date_text=_resolve_date(title, context),
        city=match.group(3).strip(),
        raw=line
    )
    return parsed, replace(context, active_date='')


def _on_state_event_no_city(match: re.Match, line: str, context: DateContext) -> RuleResult:
    """
    Build an event from ``XX - Title``.

    Args:
        match: Match with groups (state, title)
        line: The full line
        context: Date context; its active date is consumed on success

    Returns:
        Parsed fields and a context with the active date cleared, or None
        and the untouched context when the title looks like noise
    """
    title = match.group(2).strip()
    if _looks_like_noise(title):
        logger.debug(f"Skipping line with link-like title: {line}")
        return None, context
    parsed = ParsedLine(
        state=match.group(1),
        title=title,
        date_text=_resolve_date(title, context),
        city='',
        raw=line
    )
    return parsed, replace(context, active_date='')


# First match wins; later patterns are looser and must stay behind the
# stricter ones they would otherwise shadow.
LINE_RULES = [
    ('month', _match_month, _on_month),
    ('day', _match_day, _on_day),
    ('year', _match_year, _on_year),
    ('date_event_with_city', _pattern(DATE_EVENT_WITH_CITY), _on_date_event_with_city),
    ('date_event_no_city', _pattern(DATE_EVENT_NO_CITY), _on_date_event_no_city),
    ('bracketed_date', _pattern(BRACKETED_DATE), _on_bracketed_date),
    ('state_event_with_city', _pattern(STATE_EVENT_WITH_CITY), _on_state_event_with_city),
    ('state_event_no_city', _pattern(STATE_EVENT_NO_CITY), _on_state_event_no_city),
]


def parse_line(line: str, context: DateContext) -> RuleResult:
    """
    Apply the first matching rule to a single trimmed line.

    Args:
        line: Non-empty, trimmed line of page text
        context: Date context carried from previous lines

    Returns:
        Tuple of (parsed event fields or None, updated date context)
    """
    for name, matcher, handler in LINE_RULES:
        match = matcher(line, context)
        if match:
            return handler(match, line, context)
    return None, context


class EventLineParser:
    """Extracts events from the text content of the state events page."""

    def __init__(self, processor: Optional[EventProcessor] = None):
        self.processor = processor or EventProcessor()

    def parse(
        self,
        text: str,
        source_url: str,
        now: Optional[datetime] = None
    ) -> List[Event]:
        """
        Extract events from page text.

        Args:
            text: Page text with HTML entities already decoded
            source_url: URL the text was fetched from
            now: Timestamp recorded as first_seen (default: now)

        Returns:
            Unique events in document order
        """
        now = now or utc_now()
        context = DateContext()
        events = []

        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue

            parsed, context = parse_line(line, context)
            if parsed is None:
                continue

            events.append(self.processor.build_event(
                state=parsed.state,
                title=parsed.title,
                date_text=parsed.date_text,
                city=parsed.city,
                raw=parsed.raw,
                source_url=source_url,
                first_seen=now
            ))

        logger.info(f"Extracted {len(events)} event lines from page text")
        return self.processor.deduplicate(events)
