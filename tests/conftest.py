"""Shared fixtures for the calendar import tests."""
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from moto import mock_aws

from processor.event_processor import EventProcessor
from processor.models import RawEvent
from storage.dynamodb_manager import (
    CANONICAL_KEY_INDEX,
    SOURCE_UID_INDEX,
    DynamoDBManager,
)

TABLE_NAME = 'test-community-events'
REGION = 'us-east-1'


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)


def create_events_table(with_identity_indexes: bool = True):
    """Create the events table, optionally without the identity indexes."""
    dynamodb = boto3.resource('dynamodb', region_name=REGION)
    kwargs = {
        'TableName': TABLE_NAME,
        'KeySchema': [{'AttributeName': 'event_id', 'KeyType': 'HASH'}],
        'AttributeDefinitions': [{'AttributeName': 'event_id', 'AttributeType': 'S'}],
        'BillingMode': 'PAY_PER_REQUEST',
    }
    if with_identity_indexes:
        kwargs['AttributeDefinitions'] += [
            {'AttributeName': 'source_uid', 'AttributeType': 'S'},
            {'AttributeName': 'canonical_key', 'AttributeType': 'S'},
        ]
        kwargs['GlobalSecondaryIndexes'] = [
            {
                'IndexName': SOURCE_UID_INDEX,
                'KeySchema': [{'AttributeName': 'source_uid', 'KeyType': 'HASH'}],
                'Projection': {'ProjectionType': 'ALL'},
            },
            {
                'IndexName': CANONICAL_KEY_INDEX,
                'KeySchema': [{'AttributeName': 'canonical_key', 'KeyType': 'HASH'}],
                'Projection': {'ProjectionType': 'ALL'},
            },
        ]
    return dynamodb.create_table(**kwargs)


@pytest.fixture
def dynamodb_table():
    """Mock events table with both identity indexes."""
    with mock_aws():
        yield create_events_table(with_identity_indexes=True)


@pytest.fixture
def legacy_table():
    """Mock events table created before the identity indexes existed."""
    with mock_aws():
        yield create_events_table(with_identity_indexes=False)


@pytest.fixture
def store(dynamodb_table):
    return DynamoDBManager(TABLE_NAME, region_name=REGION)


@pytest.fixture
def legacy_store(legacy_table):
    return DynamoDBManager(TABLE_NAME, region_name=REGION)


@pytest.fixture
def now():
    return datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)


def make_raw_event(**overrides) -> RawEvent:
    """RawEvent for a 19:00 Vancouver show with sensible defaults."""
    start_at = datetime(2024, 6, 15, 2, 0, tzinfo=timezone.utc)
    values = {
        'title': 'Punjabi Night Live',
        'start_at': start_at,
        'end_at': start_at + timedelta(hours=3),
        'is_all_day_hint': False,
        'location': 'Commodore Ballroom, 868 Granville St, Vancouver',
        'description': 'Join us!\nTickets: https://www.eventbrite.ca/e/123\nTags: concert, live',
        'organizer_hint': 'Desi Events',
        'source_uid': 'evt-123@example.com',
        'raw_timezone_hint': 'America/Vancouver',
    }
    values.update(overrides)
    return RawEvent(**values)


@pytest.fixture
def raw_event_factory():
    return make_raw_event


@pytest.fixture
def event_factory(now):
    """Build CanonicalEvents through the real processor."""
    processor = EventProcessor(timezone='America/Vancouver', city='Vancouver, BC')

    def build(processed_at=None, **overrides):
        return processor.process_event(make_raw_event(**overrides), processed_at or now)

    return build
