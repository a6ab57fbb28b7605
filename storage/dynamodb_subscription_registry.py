"""DynamoDB-backed registry of calendar subscriptions."""
import logging
import threading
import uuid
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from calendar_sync.models import Subscription
from ics_codec.timestamps import current_time_millis

logger = logging.getLogger(__name__)


class DynamoDBSubscriptionRegistry:
    """CRUD access to the subscriptions table, keyed by subscription_id."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        self.table_name = table_name
        self.region_name = region_name
        self._local = threading.local()
        logger.info(f"Initialized DynamoDBSubscriptionRegistry for table: {table_name}")

    @property
    def table(self):
        table = getattr(self._local, 'table', None)
        if table is None:
            session = boto3.session.Session()
            dynamodb = session.resource('dynamodb', region_name=self.region_name)
            table = self._local.table = dynamodb.Table(self.table_name)
        return table

    def add_subscription(
        self,
        name: str,
        url: str,
        color: Optional[str] = None,
        enabled: bool = True
    ) -> Subscription:
        """
        Register a new subscription.

        Args:
            name: Display name
            url: Feed URL (http, https or webcal)
            color: Optional display color
            enabled: Whether bulk sync includes it

        Returns:
            The stored Subscription
        """
        subscription = Subscription(
            id=str(uuid.uuid4()),
            name=name,
            url=url,
            color=color,
            enabled=enabled,
            last_sync_time=None,
            created_at=current_time_millis()
        )
        self.save(subscription)
        logger.info(f"Added subscription '{name}' ({url})")
        return subscription

    def save(self, subscription: Subscription) -> None:
        """Insert or replace a subscription record."""
        try:
            self.table.put_item(Item=self._subscription_to_item(subscription))
        except ClientError as e:
            logger.error(f"Error saving subscription {subscription.id}: {e}")
            raise

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        try:
            response = self.table.get_item(Key={'subscription_id': subscription_id})
        except ClientError as e:
            logger.error(f"Error reading subscription {subscription_id}: {e}")
            raise
        item = response.get('Item')
        return self._item_to_subscription(item) if item else None

    def list_subscriptions(self) -> List[Subscription]:
        """All subscriptions, newest first."""
        subscriptions = [self._item_to_subscription(item) for item in self._scan()]
        subscriptions.sort(key=lambda sub: sub.created_at, reverse=True)
        return subscriptions

    def list_enabled(self) -> List[Subscription]:
        """Enabled subscriptions in creation order."""
        enabled = [
            self._item_to_subscription(item) for item in self._scan()
            if item.get('enabled', True)
        ]
        enabled.sort(key=lambda sub: (sub.created_at, sub.name))
        return enabled

    def set_enabled(self, subscription_id: str, enabled: bool) -> None:
        self._update_attribute(subscription_id, 'enabled', enabled)

    def update_last_sync_time(self, subscription_id: str, sync_time: int) -> None:
        """Record when a subscription last synced successfully."""
        self._update_attribute(subscription_id, 'last_sync_time', sync_time)

    def delete_subscription(self, subscription_id: str) -> None:
        try:
            self.table.delete_item(Key={'subscription_id': subscription_id})
        except ClientError as e:
            logger.error(f"Error deleting subscription {subscription_id}: {e}")
            raise
        logger.info(f"Deleted subscription {subscription_id}")

    def _update_attribute(self, subscription_id: str, name: str, value) -> None:
        try:
            self.table.update_item(
                Key={'subscription_id': subscription_id},
                UpdateExpression='SET #attr = :value',
                ConditionExpression='attribute_exists(subscription_id)',
                ExpressionAttributeNames={'#attr': name},
                ExpressionAttributeValues={':value': value}
            )
        except ClientError as e:
            logger.error(f"Error updating {name} on subscription {subscription_id}: {e}")
            raise

    def _scan(self) -> List[dict]:
        try:
            response = self.table.scan()
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning subscriptions table: {e}")
            raise
        return items

    @staticmethod
    def _subscription_to_item(subscription: Subscription) -> dict:
        item = {
            'subscription_id': subscription.id,
            'name': subscription.name,
            'url': subscription.url,
            'enabled': subscription.enabled,
            'created_at': subscription.created_at
        }
        if subscription.color is not None:
            item['color'] = subscription.color
        if subscription.last_sync_time is not None:
            item['last_sync_time'] = subscription.last_sync_time
        return item

    @staticmethod
    def _item_to_subscription(item: dict) -> Subscription:
        last_sync = item.get('last_sync_time')
        return Subscription(
            id=item['subscription_id'],
            name=item['name'],
            url=item['url'],
            color=item.get('color'),
            enabled=bool(item.get('enabled', True)),
            last_sync_time=int(last_sync) if last_sync is not None else None,
            created_at=int(item.get('created_at', 0))
        )
