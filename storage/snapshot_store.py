"""DynamoDB-backed storage for event snapshots.

Each scope owns one partition. A pointer item (sort key ``SNAPSHOT``)
names the current generation and carries the change log; every event and
every archived removal is its own item under ``<generation>#EVENT#<id>``
or ``<generation>#REMOVED#<id>``. A save writes the new generation first
and then swaps the pointer, so a failed save leaves the previous snapshot
readable.
"""
import json
import logging
import uuid
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from processor.models import ALL_STATES, Event, Snapshot

logger = logging.getLogger(__name__)

POINTER_KEY = 'SNAPSHOT'
EVENT_PREFIX = 'EVENT#'
REMOVED_PREFIX = 'REMOVED#'


def normalize_scope(scope: Optional[str]) -> str:
    """
    Normalize a check scope to its storage key.

    Args:
        scope: Two-letter state code, 'all', or empty

    Returns:
        Upper-cased state code, or ALL for the all-states scope
    """
    scope = (scope or '').strip().upper()
    return scope or ALL_STATES


class SnapshotStore:
    """Persists one snapshot per scope in a DynamoDB table."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table (hash key: scope,
                range key: item_key)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized SnapshotStore for table: {table_name}")

    def load_snapshot(self, scope: str) -> Optional[Snapshot]:
        """
        Load the stored snapshot for a scope.

        Args:
            scope: State code or ALL

        Returns:
            Snapshot, or None if no snapshot has been saved yet

        Raises:
            ClientError: If a DynamoDB read fails
            ValueError: If the stored snapshot is malformed or incomplete
        """
        key = normalize_scope(scope)

        pointer = self._get_pointer(key)
        if pointer is None:
            logger.info(f"No stored snapshot for scope {key}")
            return None

        generation = self._generation(pointer)
        items = self._query_items(key, f"{generation}#")

        snapshot = self._items_to_snapshot(pointer, items, generation)
        logger.info(
            f"Loaded snapshot for scope {key} with {len(snapshot.events)} events"
        )
        return snapshot

    def save_snapshot(self, snapshot: Snapshot, scope: str) -> None:
        """
        Replace the stored snapshot for a scope.

        The events and removals are written under a fresh generation before
        the pointer item is switched to it. Items of older generations are
        deleted afterwards.

        Args:
            snapshot: Snapshot to persist
            scope: State code or ALL

        Raises:
            ClientError: If writing the new generation or the pointer fails
        """
        key = normalize_scope(scope)
        generation = uuid.uuid4().hex

        items = self._snapshot_to_items(snapshot, key, generation)
        self._batch_write(items, key)

        try:
            self.table.put_item(Item=self._snapshot_to_pointer(snapshot, key, generation))
        except ClientError as e:
            logger.error(f"Error writing snapshot pointer for scope {key}: {e}")
            raise

        removed = self._delete_stale_items(key, generation)
        logger.info(
            f"Saved snapshot for scope {key} with {len(snapshot.events)} events "
            f"and {len(snapshot.removed_events)} archived removals "
            f"({removed} stale items deleted)"
        )

    def get_event(self, event_id: str, scope: str = ALL_STATES) -> Optional[Event]:
        """
        Look up an event in the stored snapshot for a scope.

        Args:
            event_id: Event ID to find
            scope: State code or ALL (default: ALL)

        Returns:
            Event, or None if there is no snapshot or the ID is unknown

        Raises:
            ClientError: If a DynamoDB read fails
            ValueError: If the stored event is malformed
        """
        key = normalize_scope(scope)

        pointer = self._get_pointer(key)
        if pointer is None:
            return None

        item_key = f"{self._generation(pointer)}#{EVENT_PREFIX}{event_id}"
        try:
            response = self.table.get_item(Key={'scope': key, 'item_key': item_key})
        except ClientError as e:
            logger.error(f"Error reading event {event_id} for scope {key}: {e}")
            raise

        item = response.get('Item')
        if not item:
            return None
        return Event.from_dict(self._decode(item))

    def _get_pointer(self, scope: str) -> Optional[dict]:
        try:
            response = self.table.get_item(
                Key={'scope': scope, 'item_key': POINTER_KEY}
            )
        except ClientError as e:
            logger.error(f"Error reading snapshot for scope {scope}: {e}")
            raise
        return response.get('Item')

    def _generation(self, pointer: dict) -> str:
        generation = pointer.get('generation')
        if not generation:
            raise ValueError(
                f"Stored snapshot for scope {pointer.get('scope')} has no generation"
            )
        return generation

    def _query_items(self, scope: str, prefix: str = '', keys_only: bool = False) -> List[dict]:
        """
        Read every item of a scope whose sort key starts with a prefix.

        Args:
            scope: Normalized scope key
            prefix: Sort key prefix (empty for the whole partition)
            keys_only: Only fetch the key attributes

        Returns:
            List of DynamoDB items
        """
        condition = Key('scope').eq(scope)
        if prefix:
            condition = condition & Key('item_key').begins_with(prefix)

        kwargs = {'KeyConditionExpression': condition}
        if keys_only:
            kwargs['ProjectionExpression'] = 'item_key'

        try:
            response = self.table.query(**kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error querying items for scope {scope}: {e}")
            raise

        return items

    def _batch_write(self, items: List[dict], scope: str) -> None:
        """
        Write items in batches of 25.

        Args:
            items: DynamoDB items to put
            scope: Normalized scope key, for logging

        Raises:
            ClientError: If any batch fails; the pointer is then left alone
        """
        for i in range(0, len(items), self.BATCH_SIZE):
            batch = items[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for item in batch:
                        writer.put_item(Item=item)
            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1} "
                    f"for scope {scope}: {e}"
                )
                raise

    def _delete_stale_items(self, scope: str, generation: str) -> int:
        """
        Delete items that do not belong to the current generation.

        Failures are logged and left for the next save to clean up, since
        the new snapshot is already committed.

        Args:
            scope: Normalized scope key
            generation: Generation the pointer now names

        Returns:
            Count of deleted items
        """
        current_prefix = f"{generation}#"
        try:
            stale_keys = [
                item['item_key'] for item in self._query_items(scope, keys_only=True)
                if item['item_key'] != POINTER_KEY
                and not item['item_key'].startswith(current_prefix)
            ]
        except ClientError:
            logger.warning(f"Skipping stale item cleanup for scope {scope}")
            return 0

        deleted = 0
        for i in range(0, len(stale_keys), self.BATCH_SIZE):
            batch = stale_keys[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for item_key in batch:
                        writer.delete_item(Key={'scope': scope, 'item_key': item_key})
                        deleted += 1
            except ClientError as e:
                logger.warning(
                    f"Error deleting stale batch {i // self.BATCH_SIZE + 1} "
                    f"for scope {scope}: {e}"
                )
                continue

        return deleted

    def _decode(self, item: dict) -> dict:
        try:
            return json.loads(item['data'])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(
                f"Stored item {item.get('item_key')} for scope "
                f"{item.get('scope')} is malformed: {e}"
            ) from e

    def _items_to_snapshot(self, pointer: dict, items: List[dict], generation: str) -> Snapshot:
        """
        Convert the pointer and generation items to a Snapshot object.

        Args:
            pointer: Pointer item for the scope
            items: Items of the pointer's generation
            generation: Generation named by the pointer

        Returns:
            Snapshot object

        Raises:
            ValueError: If an item cannot be decoded or events are missing
        """
        events: Dict[str, dict] = {}
        removed: Dict[str, dict] = {}
        event_prefix = f"{generation}#{EVENT_PREFIX}"
        removed_prefix = f"{generation}#{REMOVED_PREFIX}"

        for item in items:
            item_key = item['item_key']
            if item_key.startswith(event_prefix):
                events[item_key[len(event_prefix):]] = self._decode(item)
            elif item_key.startswith(removed_prefix):
                removed[item_key[len(removed_prefix):]] = self._decode(item)

        expected = int(pointer.get('event_count', len(events)))
        if expected != len(events):
            raise ValueError(
                f"Stored snapshot for scope {pointer.get('scope')} is incomplete: "
                f"expected {expected} events, found {len(events)}"
            )

        try:
            change_log = json.loads(pointer.get('change_log') or '[]')
            return Snapshot.from_dict({
                'events': events,
                'change_log': change_log,
                'removed_events': removed,
                'captured_at': pointer.get('captured_at'),
            })
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(
                f"Stored snapshot for scope {pointer.get('scope')} is malformed: {e}"
            ) from e

    def _snapshot_to_items(self, snapshot: Snapshot, scope: str, generation: str) -> List[dict]:
        """
        Convert the events and removals of a snapshot to DynamoDB items.

        Args:
            snapshot: Snapshot object
            scope: Normalized scope key
            generation: Generation the items belong to

        Returns:
            List of DynamoDB item dictionaries
        """
        items = []

        for event_id, event in snapshot.events.items():
            items.append({
                'scope': scope,
                'item_key': f"{generation}#{EVENT_PREFIX}{event_id}",
                'data': json.dumps(event.to_dict())
            })

        for event_id, entry in snapshot.removed_events.items():
            items.append({
                'scope': scope,
                'item_key': f"{generation}#{REMOVED_PREFIX}{event_id}",
                'data': json.dumps(entry.to_dict())
            })

        return items

    def _snapshot_to_pointer(self, snapshot: Snapshot, scope: str, generation: str) -> dict:
        item = {
            'scope': scope,
            'item_key': POINTER_KEY,
            'generation': generation,
            'event_count': len(snapshot.events),
            'removed_count': len(snapshot.removed_events),
            'change_log': json.dumps([change.to_dict() for change in snapshot.change_log])
        }

        if snapshot.captured_at:
            item['captured_at'] = snapshot.captured_at.isoformat()

        return item
