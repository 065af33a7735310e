"""AWS Lambda handler for VGA Golf state event change tracking."""
import json
import logging
import os
import time
from typing import Dict, Any

from scraper.vga_events import VGAEventsScraper
from processor.diff_engine import DiffEngine
from processor.dates import is_upcoming, is_within_days
from processor.event_processor import EventProcessor
from processor.models import utc_now
from storage.snapshot_store import SnapshotStore, normalize_scope


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _error_response(message: str, error: Exception, start_time: float, **extra) -> Dict[str, Any]:
    body = {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        **extra,
        'duration_seconds': round(time.time() - start_time, 2)
    }
    return {'statusCode': 500, 'body': json.dumps(body)}


def _parse_flag(value: Any) -> bool:
    """Interpret a payload or environment flag; strings like 'false' are False."""
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def _lookup_response(store: SnapshotStore, event_id: str, scope: str) -> Dict[str, Any]:
    """
    Answer an event lookup from the stored snapshot.

    Args:
        store: Snapshot store
        event_id: Event ID requested in the payload
        scope: Normalized scope whose snapshot is searched

    Returns:
        200 response with the event, or 404 when it is not stored
    """
    found = store.get_event(event_id, scope)
    if found is None:
        return {
            'statusCode': 404,
            'body': json.dumps({
                'message': 'Event not found',
                'scope': scope,
                'event_id': event_id
            })
        }

    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Event found',
            'scope': scope,
            'event': found.to_dict()
        })
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler: check the state events page for changes.

    Args:
        event: EventBridge payload; may carry 'state', 'refresh' and
            'event_id' (look up one stored event instead of checking)
        context: Lambda context object

    Returns:
        Response dict with statusCode and the classified changes
    """
    event = event or {}

    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'vga-events-snapshots')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    source_url = os.environ.get('SOURCE_URL', VGAEventsScraper.BASE_URL)
    days_ahead = int(os.environ.get('DAYS_AHEAD', '0'))
    upcoming_only = _parse_flag(os.environ.get('UPCOMING_ONLY', 'false'))
    sort_order = os.environ.get('SORT_ORDER', 'date').strip().lower()
    scope = normalize_scope(event.get('state') or os.environ.get('CHECK_STATE'))
    refresh = _parse_flag(event.get('refresh', False))
    lookup_id = event.get('event_id')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'table_name': table_name,
            'scope': scope,
            'refresh': refresh,
            'timeout_seconds': timeout_seconds,
            'days_ahead': days_ahead,
            'upcoming_only': upcoming_only,
            'sort_order': sort_order
        }
    )

    try:
        if sort_order not in EventProcessor.SORT_ORDERS:
            raise ValueError(
                f"Invalid SORT_ORDER: {sort_order} (must be one of "
                f"{', '.join(EventProcessor.SORT_ORDERS)})"
            )

        store = SnapshotStore(table_name=table_name)

        if lookup_id:
            try:
                logger.info(f"Looking up event {lookup_id} in scope {scope}")
                return _lookup_response(store, lookup_id, scope)
            except Exception as e:
                logger.error(
                    f"Error looking up event: {str(e)}",
                    extra={'error_type': type(e).__name__},
                    exc_info=True
                )
                return _error_response('Failed to look up event', e, start_time)

        scraper = VGAEventsScraper(timeout=timeout_seconds, url=source_url)
        processor = EventProcessor()
        engine = DiffEngine()

        try:
            logger.info("Fetching events from state events page")
            fetched_events = scraper.fetch_events()
            logger.info(f"Fetched {len(fetched_events)} events")
        except Exception as e:
            # Nothing has been written yet, so the stored snapshot is intact
            logger.error(
                f"Failed to fetch state events after retries: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response('Failed to fetch state events', e, start_time)

        scoped_events = processor.filter_by_state(fetched_events, scope)
        logger.info(f"{len(scoped_events)} events in scope {scope}")

        try:
            logger.info("Loading previous snapshot")
            previous = store.load_snapshot(scope)
        except Exception as e:
            logger.error(
                f"Error loading snapshot: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(
                'Failed to load snapshot', e, start_time,
                note='Previous snapshot remains in DynamoDB'
            )

        if refresh:
            # A refresh only re-baselines; nothing is reported
            snapshot = engine.rebaseline(previous, scoped_events)
            result = None
        else:
            logger.info("Comparing events with previous snapshot")
            result = engine.diff(previous, scoped_events)
            snapshot = result.snapshot
            if not result.has_changes:
                logger.info("No changes detected")

        try:
            logger.info("Saving snapshot to DynamoDB")
            store.save_snapshot(snapshot, scope)
        except Exception as e:
            logger.error(
                f"Error saving snapshot: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(
                'Failed to save snapshot', e, start_time,
                note='Previous snapshot remains in DynamoDB'
            )

        if result is None:
            detected_new, new_events, removed_events, field_changes = [], [], [], []
            new_by_state = {}
        else:
            today = utc_now().date()
            detected_new = result.new_events
            new_events = processor.sort_events(
                [
                    e for e in detected_new
                    if is_within_days(e, days_ahead, today)
                    and (not upcoming_only or is_upcoming(e, today))
                ],
                sort_order,
                today
            )
            removed_events = result.removed_events
            field_changes = result.field_changes
            new_by_state = {
                state: len(events) for state, events in result.by_state().items()
            }

        duration = time.time() - start_time

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'events_new': len(detected_new),
                'events_reported': len(new_events),
                'events_removed': len(removed_events),
                'events_changed': len(field_changes)
            }
        )

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Snapshot refreshed' if refresh else 'Check completed successfully',
                'scope': scope,
                'statistics': {
                    'events_fetched': len(fetched_events),
                    'events_in_scope': len(scoped_events),
                    'events_new': len(detected_new),
                    'events_reported': len(new_events),
                    'events_removed': len(removed_events),
                    'events_changed': len(field_changes),
                    'duration_seconds': round(duration, 2)
                },
                'new_events': [e.to_dict() for e in new_events],
                'new_by_state': new_by_state,
                'removed_events': [e.to_dict() for e in removed_events],
                'changes': [c.to_dict() for c in field_changes]
            })
        }

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _error_response('Check failed', e, start_time)
