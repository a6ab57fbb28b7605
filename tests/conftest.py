"""Shared fixtures for the calendar sync test suite."""
import os
import time

import boto3
import pytest
from moto import mock_aws

from storage.dynamodb_event_store import DynamoDBEventStore
from storage.dynamodb_subscription_registry import DynamoDBSubscriptionRegistry

EVENTS_TABLE = 'test-calendar-events'
SUBSCRIPTIONS_TABLE = 'test-calendar-subscriptions'


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so nothing can reach a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_tables():
    """Create mock events and subscriptions tables."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        events_table = dynamodb.create_table(
            TableName=EVENTS_TABLE,
            KeySchema=[
                {'AttributeName': 'source_key', 'KeyType': 'HASH'},
                {'AttributeName': 'event_id', 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'source_key', 'AttributeType': 'S'},
                {'AttributeName': 'event_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        subscriptions_table = dynamodb.create_table(
            TableName=SUBSCRIPTIONS_TABLE,
            KeySchema=[
                {'AttributeName': 'subscription_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'subscription_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield events_table, subscriptions_table


@pytest.fixture
def event_store(dynamodb_tables):
    """Create DynamoDBEventStore instance with mock table."""
    return DynamoDBEventStore(EVENTS_TABLE, region_name='us-east-1')


@pytest.fixture
def subscription_registry(dynamodb_tables):
    """Create DynamoDBSubscriptionRegistry instance with mock table."""
    return DynamoDBSubscriptionRegistry(SUBSCRIPTIONS_TABLE, region_name='us-east-1')


@pytest.fixture
def new_york_tz():
    """Run the test in America/New_York, restoring the process zone after."""
    if not hasattr(time, 'tzset'):
        pytest.skip('time.tzset is not available on this platform')
    previous = os.environ.get('TZ')
    os.environ['TZ'] = 'America/New_York'
    time.tzset()
    yield
    if previous is None:
        del os.environ['TZ']
    else:
        os.environ['TZ'] = previous
    time.tzset()
