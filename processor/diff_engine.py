"""Change detection between a stored snapshot and the current extraction."""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from processor.models import (
    ChangeType,
    DiffResult,
    Event,
    EventChange,
    Snapshot,
    build_stable_index,
    utc_now,
)

logger = logging.getLogger(__name__)

# Compared in this order; only the first differing field is reported
COMPARED_FIELDS = [
    ('date_text', ChangeType.DATE_CHANGED),
    ('title', ChangeType.TITLE_CHANGED),
    ('city', ChangeType.CITY_CHANGED),
]


class DiffEngine:
    """Classifies events as new, removed or changed across two runs."""

    def diff(
        self,
        previous: Optional[Snapshot],
        current: List[Event],
        now: Optional[datetime] = None
    ) -> DiffResult:
        """
        Compare the current events with the previous snapshot.

        Exact ID matches are carried forward silently. A previous event
        whose ID vanished is paired with a current event sharing its
        stable key, which yields a single field change; unpaired previous
        events are removed and unpaired current events are new.

        The previous snapshot is not modified.

        Args:
            previous: Snapshot from the last run, or None on the first run
            current: Deduplicated events from this run in document order
            now: Time of this run (default: now)

        Returns:
            DiffResult with the classified changes and the next snapshot
        """
        now = now or utc_now()
        if previous is None:
            logger.info("No previous snapshot; treating all events as new")
            previous = Snapshot()

        current_by_id: Dict[str, Event] = {}
        for event in current:
            current_by_id.setdefault(event.event_id, event)
        current_index = build_stable_index(current_by_id.values())

        changes: List[EventChange] = []
        removed: List[Event] = []
        partners: Dict[str, Event] = {}

        for event_id, old_event in previous.events.items():
            if event_id in current_by_id:
                continue

            partner_id = current_index.get(old_event.stable_key)
            if (
                partner_id is not None
                and partner_id not in previous.events
                and partner_id not in partners
            ):
                partners[partner_id] = old_event
                changes.append(
                    self.classify_change(old_event, current_by_id[partner_id], now)
                )
            else:
                removed.append(old_event)
                changes.append(EventChange(
                    event_id=event_id,
                    stable_key=old_event.stable_key,
                    change_type=ChangeType.REMOVED,
                    old_value=old_event.title,
                    new_value='',
                    detected_at=now
                ))

        new_events: List[Event] = []
        carried: List[Event] = []

        for event_id, event in current_by_id.items():
            earlier = previous.events.get(event_id) or partners.get(event_id)
            if earlier is not None:
                carried.append(replace(event, first_seen=earlier.first_seen))
                continue

            new_events.append(event)
            changes.append(EventChange(
                event_id=event_id,
                stable_key=event.stable_key,
                change_type=ChangeType.NEW,
                old_value='',
                new_value=event.title,
                detected_at=now
            ))
            carried.append(event)

        snapshot = self._next_snapshot(previous, carried, changes, removed, now)

        unchanged = len(carried) - len(new_events) - len(partners)
        logger.info(
            f"Diff complete: {len(new_events)} new, {len(removed)} removed, "
            f"{len(partners)} changed, {unchanged} unchanged"
        )

        return DiffResult(
            new_events=new_events,
            removed_events=removed,
            changes=changes,
            snapshot=snapshot
        )

    def classify_change(
        self,
        old_event: Event,
        new_event: Event,
        detected_at: datetime
    ) -> EventChange:
        """
        Describe how a matched pair of events differs.

        Args:
            old_event: Event from the previous snapshot
            new_event: Event from the current run with the same stable key
            detected_at: Time of this run

        Returns:
            EventChange for the first differing field, or an UNKNOWN change
            carrying the raw lines when no compared field differs
        """
        for field_name, change_type in COMPARED_FIELDS:
            old_value = getattr(old_event, field_name)
            new_value = getattr(new_event, field_name)
            if old_value != new_value:
                return EventChange(
                    event_id=new_event.event_id,
                    stable_key=new_event.stable_key,
                    change_type=change_type,
                    old_value=old_value,
                    new_value=new_value,
                    detected_at=detected_at
                )

        return EventChange(
            event_id=new_event.event_id,
            stable_key=new_event.stable_key,
            change_type=ChangeType.UNKNOWN,
            old_value=old_event.raw,
            new_value=new_event.raw,
            detected_at=detected_at
        )

    def rebaseline(
        self,
        previous: Optional[Snapshot],
        current: List[Event],
        now: Optional[datetime] = None
    ) -> Snapshot:
        """
        Build a fresh baseline snapshot without classifying anything.

        The current events replace the previous ones outright, but the
        change log and the unexpired removed archive are kept, and events
        whose ID survives keep their first_seen.

        Args:
            previous: Snapshot from the last run, or None
            current: Deduplicated events from this run in document order
            now: Time of this run (default: now)

        Returns:
            Snapshot to store as the new baseline
        """
        now = now or utc_now()
        previous = previous or Snapshot()

        events = []
        for event in current:
            earlier = previous.events.get(event.event_id)
            events.append(
                replace(event, first_seen=earlier.first_seen) if earlier else event
            )

        logger.info(f"Rebaselining snapshot with {len(events)} events")
        return self._next_snapshot(previous, events, [], [], now)

    def _next_snapshot(
        self,
        previous: Snapshot,
        events: List[Event],
        changes: List[EventChange],
        removed: List[Event],
        now: datetime
    ) -> Snapshot:
        snapshot = Snapshot.create(events, captured_at=now)

        snapshot.change_log = list(previous.change_log)
        snapshot.append_changes(
            change for change in changes
            if change.change_type not in (ChangeType.NEW, ChangeType.REMOVED)
        )

        snapshot.removed_events = dict(previous.removed_events)
        purged = snapshot.prune_removed(now)
        if purged:
            logger.info(f"Purged {purged} expired removed events")

        for event_id in snapshot.events:
            snapshot.removed_events.pop(event_id, None)
        snapshot.record_removed(removed, now)

        return snapshot
