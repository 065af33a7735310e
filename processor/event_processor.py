"""Event processor for identity assignment, deduplication and filtering."""
import hashlib
import logging
import re
from datetime import date, datetime
from typing import List, Optional

from processor.dates import parse_date, strip_date_tokens
from processor.models import ALL_STATES, Event, utc_now

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r'[^\w]+')
_WHITESPACE = re.compile(r'\s+')


def normalize(text: Optional[str]) -> str:
    """Trim and case-fold text for exact-content comparison."""
    return (text or '').strip().casefold()


def stable_title(title: str) -> str:
    """
    Reduce a title to the tokens that identify an event across runs.

    Embedded dates, punctuation and whitespace differences are removed so
    that "Chimera Golf Club 4.4.26" and "Chimera  Golf Club, 4.5.26" reduce
    to the same value.
    """
    text = strip_date_tokens(normalize(title))
    text = _NON_WORD.sub(' ', text)
    return _WHITESPACE.sub(' ', text).strip()


class EventProcessor:
    """Processor that assigns identities to extracted events."""

    SORT_ORDERS = ('date', 'state', 'title')

    def generate_event_id(self, state: str, title: str, city: str = '') -> str:
        """
        Generate the exact-content identifier for an event.

        Any change to state, title or city (beyond surrounding whitespace
        and letter case) yields a different ID.

        Args:
            state: Two-letter state code
            title: Event title
            city: Event city, empty if not listed

        Returns:
            Event ID (SHA256 hash)
        """
        composite = f"{normalize(state)}|{normalize(title)}|{normalize(city)}"
        return hashlib.sha256(composite.encode('utf-8')).hexdigest()

    def generate_stable_key(self, state: str, title: str, city: str = '') -> str:
        """
        Generate the drift-tolerant identifier for an event.

        Args:
            state: Two-letter state code
            title: Event title
            city: Event city, empty if not listed

        Returns:
            Stable key (SHA256 hash)
        """
        city_part = _WHITESPACE.sub(' ', normalize(city))
        composite = f"{normalize(state)}|{stable_title(title)}|{city_part}"
        return hashlib.sha256(composite.encode('utf-8')).hexdigest()

    def build_event(
        self,
        state: str,
        title: str,
        date_text: str,
        city: str,
        raw: str,
        source_url: str,
        first_seen: Optional[datetime] = None
    ) -> Event:
        """Create an Event with both identifiers populated."""
        return Event(
            event_id=self.generate_event_id(state, title, city),
            stable_key=self.generate_stable_key(state, title, city),
            state=state,
            title=title,
            date_text=date_text,
            city=city,
            raw=raw,
            source_url=source_url,
            first_seen=first_seen or utc_now()
        )

    def deduplicate(self, events: List[Event]) -> List[Event]:
        """
        Remove events with a repeated ID, keeping the first occurrence.

        Args:
            events: Events in document order

        Returns:
            Unique events in document order
        """
        seen = set()
        unique = []

        for event in events:
            if event.event_id in seen:
                logger.debug(f"Dropping duplicate event: {event.raw}")
                continue
            seen.add(event.event_id)
            unique.append(event)

        if len(unique) < len(events):
            logger.info(
                f"Removed {len(events) - len(unique)} duplicate events"
            )
        return unique

    def filter_by_state(self, events: List[Event], state: str) -> List[Event]:
        """
        Keep only events for one state, or all events for the ALL scope.

        Args:
            events: Events to filter
            state: Two-letter state code or ALL

        Returns:
            Filtered list of events
        """
        state = (state or ALL_STATES).strip().upper()
        if state == ALL_STATES:
            return list(events)
        return [event for event in events if event.state.upper() == state]

    def sort_events(
        self,
        events: List[Event],
        order: str = 'date',
        today: Optional[date] = None
    ) -> List[Event]:
        """
        Sort events for presentation.

        Events with a parseable date come before those without; ties fall
        back to state, then case-insensitive title.

        Args:
            events: Events to sort
            order: One of 'date', 'state' or 'title'
            today: Reference date for year-less date text

        Returns:
            New sorted list

        Raises:
            ValueError: If the sort order is not recognized
        """
        if order not in self.SORT_ORDERS:
            raise ValueError(
                f"Invalid sort order: {order} (must be one of "
                f"{', '.join(self.SORT_ORDERS)})"
            )

        def date_key(event: Event) -> tuple:
            parsed = parse_date(event.date_text, today)
            if parsed is None:
                return (1, date.max)
            return (0, parsed)

        def key(event: Event) -> tuple:
            title = event.title.lower()
            if order == 'state':
                return (event.state,) + date_key(event) + (title,)
            if order == 'title':
                return (title,) + date_key(event)
            return date_key(event) + (event.state, title)

        return sorted(events, key=key)
