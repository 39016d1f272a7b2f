"""DynamoDB manager for community event storage operations."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import STATUS_PAST, CanonicalEvent, StoreCapabilities

logger = logging.getLogger(__name__)

SOURCE_UID_INDEX = 'source-uid-index'
CANONICAL_KEY_INDEX = 'canonical-key-index'
ISO_FORMAT = '%Y-%m-%dT%H:%M:%SZ'

# Fields rewritten when an existing row's content changes. Identity, start
# time, status and created_at are never touched by an update.
UPDATABLE_FIELDS = (
    'description', 'category', 'end_at', 'timezone', 'is_all_day',
    'address', 'city', 'organizer', 'tickets_url', 'source_url',
    'image_url', 'price_from', 'tags', 'featured', 'content_hash',
    'updated_at',
)


def to_iso(value: datetime) -> str:
    """Serialize an aware datetime as sortable UTC text."""
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def from_iso(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)


class DynamoDBManager:
    """Manager for DynamoDB operations on the community events table."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the environment's
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def probe_capabilities(self) -> StoreCapabilities:
        """
        Detect which identity lookups the table currently supports.

        The identity indexes may still be rolling out; a missing or
        building index disables the matching lookup for this run.

        Returns:
            StoreCapabilities for the table
        """
        try:
            description = self.table.meta.client.describe_table(
                TableName=self.table_name
            )['Table']
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Unable to describe table {self.table_name}: {e}")
            return StoreCapabilities(source_uid_lookup=False, canonical_key_lookup=False)

        active = {
            index['IndexName']
            for index in description.get('GlobalSecondaryIndexes', [])
            if index.get('IndexStatus', 'ACTIVE') == 'ACTIVE'
        }
        capabilities = StoreCapabilities(
            source_uid_lookup=SOURCE_UID_INDEX in active,
            canonical_key_lookup=CANONICAL_KEY_INDEX in active
        )
        logger.info(
            f"Store capabilities: source_uid_lookup={capabilities.source_uid_lookup}, "
            f"canonical_key_lookup={capabilities.canonical_key_lookup}"
        )
        return capabilities

    def find_by_source_uid(self, source_uid: str) -> Optional[Dict[str, Any]]:
        return self._query_index(SOURCE_UID_INDEX, 'source_uid', source_uid)

    def find_by_canonical_key(self, canonical_key: str) -> Optional[Dict[str, Any]]:
        return self._query_index(CANONICAL_KEY_INDEX, 'canonical_key', canonical_key)

    def find_by_title_start_venue(
        self,
        title: str,
        start_at: datetime,
        venue: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        """
        Exact (title, start, venue) match via a filtered Scan.

        Used only while the identity indexes are unavailable.
        """
        condition = Attr('title').eq(title) & Attr('start_at').eq(to_iso(start_at))
        if venue:
            condition = condition & Attr('venue').eq(venue)
        else:
            condition = condition & Attr('venue').not_exists()
        return self._oldest(self._scan(FilterExpression=condition))

    def get_all_events(self) -> Dict[str, Dict[str, Any]]:
        """
        Retrieve all stored events.

        Returns:
            Dictionary mapping event_id to the stored item
        """
        logger.info("Scanning DynamoDB table for all events")
        events = {item['event_id']: item for item in self._scan()}
        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def find_sweepable(self, cutoff: datetime) -> List[Dict[str, Any]]:
        """Events starting before ``cutoff`` that are not yet marked past."""
        condition = Attr('start_at').lt(to_iso(cutoff)) & Attr('status').ne(STATUS_PAST)
        return self._scan(FilterExpression=condition)

    def insert_event(self, event: CanonicalEvent, capabilities: StoreCapabilities) -> str:
        """
        Insert a new event row.

        Args:
            event: Event to persist
            capabilities: Identity attributes are only written when their
                lookup is supported

        Returns:
            Generated event_id

        Raises:
            ClientError: If the write fails
        """
        event_id = str(uuid.uuid4())
        item = self._event_to_item(event)
        item['event_id'] = event_id
        if capabilities.source_uid_lookup and event.source_uid:
            item['source_uid'] = event.source_uid
        if capabilities.canonical_key_lookup:
            item['canonical_key'] = event.canonical_key

        self.table.put_item(
            Item=item,
            ConditionExpression='attribute_not_exists(event_id)'
        )
        logger.debug(f"Inserted event {event_id}: {event.title}")
        return event_id

    def update_event(
        self,
        event_id: str,
        event: CanonicalEvent,
        backfill: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Rewrite the descriptive and commercial fields of an existing row.

        Args:
            event_id: Row to update
            event: New content
            backfill: Identity attributes missing on the row to set as well

        Raises:
            ClientError: If the write fails or the row no longer exists
        """
        item = self._event_to_item(event)
        values = {name: item.get(name) for name in UPDATABLE_FIELDS}
        values.update(backfill or {})

        set_parts = []
        remove_parts = []
        names = {}
        expression_values = {}
        for position, (name, value) in enumerate(values.items()):
            names[f'#f{position}'] = name
            if value is None:
                remove_parts.append(f'#f{position}')
            else:
                set_parts.append(f'#f{position} = :v{position}')
                expression_values[f':v{position}'] = value

        expression = 'SET ' + ', '.join(set_parts)
        if remove_parts:
            expression += ' REMOVE ' + ', '.join(remove_parts)

        self.table.update_item(
            Key={'event_id': event_id},
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=expression_values,
            ConditionExpression='attribute_exists(event_id)'
        )
        logger.debug(f"Updated event {event_id}: {event.title}")

    def mark_past(self, event_id: str, now: datetime) -> None:
        self.table.update_item(
            Key={'event_id': event_id},
            UpdateExpression='SET #status = :past, updated_at = :now',
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={':past': STATUS_PAST, ':now': to_iso(now)},
            ConditionExpression='attribute_exists(event_id)'
        )

    def delete_event(self, event_id: str) -> None:
        self.table.delete_item(Key={'event_id': event_id})

    def _query_index(self, index_name: str, attribute: str, value: str) -> Optional[Dict[str, Any]]:
        items = []
        kwargs = {
            'IndexName': index_name,
            'KeyConditionExpression': Key(attribute).eq(value),
        }
        response = self.table.query(**kwargs)
        items.extend(response.get('Items', []))
        while 'LastEvaluatedKey' in response:
            response = self.table.query(
                ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
            )
            items.extend(response.get('Items', []))

        if len(items) > 1:
            logger.warning(f"{len(items)} rows share {attribute}={value}, using the oldest")
        return self._oldest(items)

    def _scan(self, **kwargs) -> List[Dict[str, Any]]:
        """Scan the table, following pagination."""
        response = self.table.scan(**kwargs)
        items = response.get('Items', [])
        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
            )
            items.extend(response.get('Items', []))
        return items

    @staticmethod
    def _oldest(items: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not items:
            return None
        return min(items, key=lambda item: (item.get('created_at', ''), item['event_id']))

    def _event_to_item(self, event: CanonicalEvent) -> Dict[str, Any]:
        """
        Convert a CanonicalEvent to a DynamoDB item.

        Optional attributes are left out when empty; ``event_id`` and the
        identity attributes are added by the caller.
        """
        item = {
            'title': event.title,
            'category': event.category,
            'start_at': to_iso(event.start_at),
            'end_at': to_iso(event.end_at),
            'timezone': event.timezone,
            'is_all_day': event.is_all_day,
            'city': event.city,
            'tags': list(event.tags),
            'featured': event.featured,
            'status': event.status,
            'content_hash': event.content_hash,
        }
        if event.created_at:
            item['created_at'] = to_iso(event.created_at)
        if event.updated_at:
            item['updated_at'] = to_iso(event.updated_at)

        optional = {
            'description': event.clean_description,
            'venue': event.venue,
            'address': event.address,
            'organizer': event.organizer,
            'tickets_url': event.tickets_url,
            'source_url': event.source_url,
            'image_url': event.image_url,
            'price_from': event.price_from,
        }
        for name, value in optional.items():
            if value is not None and value != '':
                item[name] = value
        return item
