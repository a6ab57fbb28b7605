"""DynamoDB-backed store for calendar events."""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from calendar_sync.models import Event

logger = logging.getLogger(__name__)

# Partition key used for events authored locally (no source tag)
LOCAL_SOURCE_KEY = 'local'


class DynamoDBEventStore:
    """
    Event store keyed by (source_key, event_id).

    Events of one subscription share a partition, so replacing a source is
    a query plus batch writes confined to that partition.
    """

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the events table
            region_name: AWS region, defaults to boto3's resolution
        """
        self.table_name = table_name
        self.region_name = region_name
        self._local = threading.local()
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    @property
    def table(self):
        """Table handle for the calling thread (boto3 resources are not thread-safe)."""
        table = getattr(self._local, 'table', None)
        if table is None:
            session = boto3.session.Session()
            dynamodb = session.resource('dynamodb', region_name=self.region_name)
            table = self._local.table = dynamodb.Table(self.table_name)
        return table

    @contextmanager
    def _source_lock(self, source_tag: str):
        # Entries live only while some thread holds or waits on them
        with self._locks_guard:
            entry = self._locks.setdefault(source_tag, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[source_tag]

    def get_all(self) -> List[Event]:
        """
        Retrieve every stored event, ordered by start time.

        Returns:
            List of Event objects
        """
        logger.info("Scanning events table")
        events = self._scan()
        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def get_events_in_range(self, start_time: int, end_time: int) -> List[Event]:
        """
        Retrieve events overlapping [start_time, end_time].

        Args:
            start_time: Range start, epoch milliseconds
            end_time: Range end, epoch milliseconds

        Returns:
            Events with start_time <= end_time and end_time >= start_time
        """
        return [
            event for event in self._scan()
            if event.start_time <= end_time and event.end_time >= start_time
        ]

    def get_by_source_tag(self, source_tag: str) -> List[Event]:
        """Retrieve all events imported from one subscription."""
        return sorted(
            (self._item_to_event(item) for item in self._query_partition(source_tag)),
            key=lambda event: event.start_time
        )

    def insert(self, event: Event) -> None:
        """Insert or replace a single event."""
        self.insert_all([event])

    def insert_all(self, events: List[Event]) -> int:
        """
        Insert or replace events in batches of 25 items.

        Args:
            events: Events to write

        Returns:
            Count of written events

        Raises:
            ClientError: If a batch write fails
        """
        if not events:
            return 0

        logger.info(f"Writing {len(events)} events to DynamoDB")
        written = 0

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer(
                    overwrite_by_pkeys=['source_key', 'event_id']
                ) as writer:
                    for event in batch:
                        writer.put_item(Item=self._event_to_item(event))
            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                raise
            written += len(batch)

        logger.info(f"Successfully wrote {written} events")
        return written

    def delete_by_source_tag(self, source_tag: str) -> int:
        """
        Delete every event imported from a subscription.

        Args:
            source_tag: Subscription URL the events were imported from

        Returns:
            Count of deleted events
        """
        keys = [
            {'source_key': item['source_key'], 'event_id': item['event_id']}
            for item in self._query_partition(source_tag)
        ]
        return self._batch_delete(keys)

    def replace_source(self, source_tag: str, events: List[Event]) -> int:
        """
        Replace all events of a subscription with a fresh set.

        Deletion and insertion for one source run under that source's lock,
        so concurrent replaces of the same source never interleave. A failed
        insert leaves the source empty.

        Args:
            source_tag: Subscription URL
            events: Newly parsed events for that source

        Returns:
            Count of inserted events
        """
        with self._source_lock(source_tag):
            deleted = self.delete_by_source_tag(source_tag)
            inserted = self.insert_all(events)
        logger.info(
            f"Replaced source {source_tag}: {deleted} deleted, {inserted} inserted"
        )
        return inserted

    def delete_local_events_in_range(self, start_time: int, end_time: int) -> int:
        """
        Delete local events starting within [start_time, end_time).

        Returns:
            Count of deleted events
        """
        keys = [
            {'source_key': item['source_key'], 'event_id': item['event_id']}
            for item in self._query_partition(None)
            if start_time <= int(item['start_time']) < end_time
        ]
        return self._batch_delete(keys)

    def delete_all_local_events(self) -> int:
        """Delete every locally authored event."""
        keys = [
            {'source_key': item['source_key'], 'event_id': item['event_id']}
            for item in self._query_partition(None)
        ]
        return self._batch_delete(keys)

    def _scan(self) -> List[Event]:
        try:
            response = self.table.scan()
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        events = [self._item_to_event(item) for item in items]
        events.sort(key=lambda event: event.start_time)
        return events

    def _query_partition(self, source_tag: Optional[str]) -> List[dict]:
        condition = Key('source_key').eq(self._source_key(source_tag))
        try:
            response = self.table.query(KeyConditionExpression=condition)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    KeyConditionExpression=condition,
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error querying source {source_tag}: {e}")
            raise
        return items

    def _batch_delete(self, keys: List[dict]) -> int:
        if not keys:
            return 0

        logger.info(f"Deleting {len(keys)} events from DynamoDB")

        for i in range(0, len(keys), self.BATCH_SIZE):
            batch = keys[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for key in batch:
                        writer.delete_item(Key=key)
            except ClientError as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                raise

        logger.info(f"Successfully deleted {len(keys)} events")
        return len(keys)

    @staticmethod
    def _source_key(source_tag: Optional[str]) -> str:
        # Prefixed so a feed URL can never collide with the local partition
        return f"feed#{source_tag}" if source_tag is not None else LOCAL_SOURCE_KEY

    def _event_to_item(self, event: Event) -> dict:
        """
        Convert Event object to DynamoDB item.

        Args:
            event: Event object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'source_key': self._source_key(event.source_tag),
            'event_id': event.id,
            'title': event.title,
            'start_time': event.start_time,
            'end_time': event.end_time,
            'is_all_day': event.is_all_day,
        }

        # Add optional fields if present
        if event.description is not None:
            item['description'] = event.description
        if event.location is not None:
            item['location'] = event.location
        if event.reminder_minutes is not None:
            item['reminder_minutes'] = event.reminder_minutes
        if event.color is not None:
            item['color'] = event.color
        if event.source_tag is not None:
            item['source_tag'] = event.source_tag

        return item

    @staticmethod
    def _item_to_event(item: dict) -> Event:
        """Convert DynamoDB item to Event object."""
        reminder = item.get('reminder_minutes')
        return Event(
            id=item['event_id'],
            title=item['title'],
            description=item.get('description'),
            location=item.get('location'),
            start_time=int(item['start_time']),
            end_time=int(item['end_time']),
            is_all_day=bool(item.get('is_all_day', False)),
            reminder_minutes=int(reminder) if reminder is not None else None,
            color=item.get('color'),
            source_tag=item.get('source_tag')
        )
