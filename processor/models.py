"""Data models for event tracking and change detection."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

ALL_STATES = 'ALL'


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ChangeType(str, Enum):
    """Classification of a detected difference between two runs."""
    NEW = 'new'
    REMOVED = 'removed'
    DATE_CHANGED = 'date-changed'
    TITLE_CHANGED = 'title-changed'
    CITY_CHANGED = 'city-changed'
    UNKNOWN = 'unknown'


@dataclass
class Event:
    """One advertised state event extracted from the source page."""
    event_id: str
    stable_key: str
    state: str
    title: str
    date_text: str
    city: str
    raw: str
    source_url: str
    first_seen: datetime

    def to_dict(self) -> dict:
        return {
            'id': self.event_id,
            'stable_key': self.stable_key,
            'state': self.state,
            'title': self.title,
            'date_text': self.date_text,
            'city': self.city,
            'raw': self.raw,
            'source_url': self.source_url,
            'first_seen': _format_timestamp(self.first_seen),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Event':
        return cls(
            event_id=data['id'],
            stable_key=data.get('stable_key', ''),
            state=data['state'],
            title=data['title'],
            date_text=data.get('date_text', ''),
            city=data.get('city', ''),
            raw=data.get('raw', ''),
            source_url=data.get('source_url', ''),
            first_seen=_parse_timestamp(data.get('first_seen')),
        )


@dataclass
class EventChange:
    """A single detected difference for one event."""
    event_id: str
    stable_key: str
    change_type: ChangeType
    old_value: str
    new_value: str
    detected_at: datetime

    def to_dict(self) -> dict:
        return {
            'event_id': self.event_id,
            'stable_key': self.stable_key,
            'change_type': self.change_type.value,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'detected_at': _format_timestamp(self.detected_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EventChange':
        return cls(
            event_id=data['event_id'],
            stable_key=data.get('stable_key', ''),
            change_type=ChangeType(data['change_type']),
            old_value=data.get('old_value', ''),
            new_value=data.get('new_value', ''),
            detected_at=_parse_timestamp(data.get('detected_at')),
        )


@dataclass
class RemovedEvent:
    """An event that disappeared from the source, kept for auditing."""
    event: Event
    removed_at: datetime

    def to_dict(self) -> dict:
        return {
            'event': self.event.to_dict(),
            'removed_at': _format_timestamp(self.removed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RemovedEvent':
        return cls(
            event=Event.from_dict(data['event']),
            removed_at=_parse_timestamp(data['removed_at']),
        )


@dataclass
class Snapshot:
    """
    Persisted state of one completed check.

    The stable index is always derived from the events; it is rebuilt
    whenever a snapshot is created or loaded, never patched in place.
    """
    events: Dict[str, Event] = field(default_factory=dict)
    stable_index: Dict[str, str] = field(default_factory=dict)
    change_log: List[EventChange] = field(default_factory=list)
    removed_events: Dict[str, RemovedEvent] = field(default_factory=dict)
    captured_at: Optional[datetime] = None

    MAX_CHANGE_LOG = 100
    REMOVED_RETENTION_DAYS = 30

    @classmethod
    def create(
        cls,
        events: Iterable[Event],
        captured_at: Optional[datetime] = None
    ) -> 'Snapshot':
        """
        Build a snapshot from a list of events.

        Events sharing an ID keep the first occurrence.

        Args:
            events: Events in document order
            captured_at: Time of the run (default: now)

        Returns:
            Snapshot with events and a freshly built stable index
        """
        by_id: Dict[str, Event] = {}
        for event in events:
            if event.event_id not in by_id:
                by_id[event.event_id] = event

        return cls(
            events=by_id,
            stable_index=build_stable_index(by_id.values()),
            captured_at=captured_at or utc_now()
        )

    def append_changes(self, changes: Iterable[EventChange]) -> None:
        """Append changes to the log, evicting the oldest beyond the cap."""
        combined = self.change_log + list(changes)
        self.change_log = combined[-self.MAX_CHANGE_LOG:]

    def prune_removed(self, now: datetime) -> int:
        """
        Drop archived removals older than the retention window.

        Args:
            now: Reference time for the current run

        Returns:
            Count of archive entries purged
        """
        cutoff = now - timedelta(days=self.REMOVED_RETENTION_DAYS)
        expired = [
            event_id for event_id, entry in self.removed_events.items()
            if entry.removed_at < cutoff
        ]
        for event_id in expired:
            del self.removed_events[event_id]
        return len(expired)

    def record_removed(self, events: Iterable[Event], removed_at: datetime) -> None:
        for event in events:
            self.removed_events[event.event_id] = RemovedEvent(
                event=event,
                removed_at=removed_at
            )

    def to_dict(self) -> dict:
        return {
            'events': {
                event_id: event.to_dict()
                for event_id, event in self.events.items()
            },
            'stable_index': dict(self.stable_index),
            'change_log': [change.to_dict() for change in self.change_log],
            'removed_events': {
                event_id: entry.to_dict()
                for event_id, entry in self.removed_events.items()
            },
            'captured_at': _format_timestamp(self.captured_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Snapshot':
        events = {
            event_id: Event.from_dict(item)
            for event_id, item in (data.get('events') or {}).items()
        }
        return cls(
            events=events,
            stable_index=build_stable_index(events.values()),
            change_log=[
                EventChange.from_dict(item)
                for item in data.get('change_log') or []
            ],
            removed_events={
                event_id: RemovedEvent.from_dict(item)
                for event_id, item in (data.get('removed_events') or {}).items()
            },
            captured_at=_parse_timestamp(data.get('captured_at')),
        )


@dataclass
class DiffResult:
    """Outcome of comparing a previous snapshot with the current run."""
    new_events: List[Event]
    removed_events: List[Event]
    changes: List[EventChange]
    snapshot: Snapshot

    @property
    def field_changes(self) -> List[EventChange]:
        """Changes other than new/removed; these are what the change log keeps."""
        return [
            change for change in self.changes
            if change.change_type not in (ChangeType.NEW, ChangeType.REMOVED)
        ]

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def by_state(self) -> Dict[str, List[Event]]:
        """Group new events by state code."""
        grouped: Dict[str, List[Event]] = {}
        for event in self.new_events:
            grouped.setdefault(event.state, []).append(event)
        return grouped


def build_stable_index(events: Iterable[Event]) -> Dict[str, str]:
    """
    Map each stable key to the first event ID that carries it.

    Args:
        events: Events in document order

    Returns:
        Dictionary mapping stable_key to event_id
    """
    index: Dict[str, str] = {}
    for event in events:
        if not event.stable_key:
            continue
        existing = index.get(event.stable_key)
        if existing is None:
            index[event.stable_key] = event.event_id
        elif existing != event.event_id:
            logger.warning(
                f"Stable key collision for event '{event.title}' "
                f"({event.event_id}); keeping {existing}"
            )
    return index
