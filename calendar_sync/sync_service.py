"""Subscription sync orchestration."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from calendar_sync.models import AggregateSyncResult, Event, Subscription, SyncOutcome
from feed.ics_feed_fetcher import FeedFetchError, ICSFeedFetcher
from ics_codec.ical_parser import parse_ics
from ics_codec.ical_serializer import export_to_ics, is_valid_ics
from ics_codec.timestamps import current_time_millis

logger = logging.getLogger(__name__)

INVALID_FORMAT_ERROR = 'invalid ICS format'
NO_EVENTS_ERROR = 'no events found'


def _error_message(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class SubscriptionSyncService:
    """
    Fetches subscribed feeds and replaces their events in the store.

    Every sync of a source is destructive: the events previously imported
    from that URL are deleted and the freshly parsed set is inserted.
    """

    def __init__(
        self,
        fetcher: ICSFeedFetcher,
        event_store,
        subscription_registry,
        clock: Optional[Callable[[], int]] = None,
        max_workers: int = 1
    ):
        """
        Initialize the sync service.

        Args:
            fetcher: Transport used to download feeds
            event_store: Store offering replace_source, insert_all and get_all
            subscription_registry: Registry offering list_enabled and
                update_last_sync_time
            clock: Callable returning epoch milliseconds
            max_workers: Upper bound on concurrent syncs in sync_all
        """
        self.fetcher = fetcher
        self.event_store = event_store
        self.subscription_registry = subscription_registry
        self.clock = clock or current_time_millis
        self.max_workers = max(1, max_workers)

    def sync_subscription(self, subscription: Subscription) -> SyncOutcome:
        """
        Sync a single subscription.

        Args:
            subscription: Subscription to refresh

        Returns:
            SyncOutcome; failures are reported, never raised
        """
        logger.info(f"Syncing subscription '{subscription.name}'")

        try:
            content = self.fetcher.fetch(subscription.url)

            if not is_valid_ics(content):
                logger.warning(
                    f"Subscription '{subscription.name}' returned invalid ICS content"
                )
                return SyncOutcome(success=False, error=INVALID_FORMAT_ERROR)

            events = parse_ics(content, source_tag=subscription.url)
            self.event_store.replace_source(subscription.url, events)
            self.subscription_registry.update_last_sync_time(
                subscription.id, self.clock()
            )

        except FeedFetchError as e:
            logger.error(f"Failed to fetch subscription '{subscription.name}': {e}")
            return SyncOutcome(success=False, error=_error_message(e))
        except Exception as e:
            logger.error(
                f"Sync of subscription '{subscription.name}' failed: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return SyncOutcome(success=False, error=_error_message(e))

        logger.info(f"Synced {len(events)} events for '{subscription.name}'")
        return SyncOutcome(success=True, event_count=len(events))

    def sync_one(self, subscription_id: str) -> SyncOutcome:
        """Sync the subscription with the given id."""
        try:
            subscription = self.subscription_registry.get_subscription(subscription_id)
        except Exception as e:
            logger.error(f"Could not load subscription {subscription_id}: {e}")
            return SyncOutcome(success=False, error=_error_message(e))

        if subscription is None:
            return SyncOutcome(
                success=False,
                error=f"subscription not found: {subscription_id}"
            )
        return self.sync_subscription(subscription)

    def sync_all(self) -> AggregateSyncResult:
        """
        Sync every enabled subscription.

        Subscriptions run on at most ``max_workers`` threads; errors keep the
        registry's iteration order regardless of completion order.

        Returns:
            AggregateSyncResult with counts and "name: message" errors
        """
        subscriptions = self.subscription_registry.list_enabled()
        logger.info(f"Starting sync of {len(subscriptions)} enabled subscriptions")

        if self.max_workers == 1 or len(subscriptions) <= 1:
            outcomes = [self.sync_subscription(sub) for sub in subscriptions]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(self.sync_subscription, subscriptions))

        succeeded = 0
        failed = 0
        errors = []

        for subscription, outcome in zip(subscriptions, outcomes):
            if outcome.success:
                succeeded += 1
            else:
                failed += 1
                errors.append(f"{subscription.name}: {outcome.error or 'unknown error'}")

        logger.info(f"Sync complete: {succeeded} succeeded, {failed} failed")
        return AggregateSyncResult(
            overall_success=failed == 0,
            succeeded_count=succeeded,
            failed_count=failed,
            errors=errors
        )

    def preview_feed(self, url: str) -> Tuple[Optional[List[Event]], Optional[str]]:
        """
        Fetch and parse a feed without storing anything.

        Returns:
            Tuple of (events, None) on success or (None, error message)
        """
        try:
            content = self.fetcher.fetch(url)
        except FeedFetchError as e:
            return None, _error_message(e)

        if not is_valid_ics(content):
            return None, INVALID_FORMAT_ERROR

        return parse_ics(content, source_tag=url), None

    def add_subscription(
        self,
        name: str,
        url: str,
        color: Optional[str] = None
    ) -> Tuple[Subscription, SyncOutcome]:
        """Register a subscription and sync it right away."""
        subscription = self.subscription_registry.add_subscription(name, url, color)
        return subscription, self.sync_subscription(subscription)

    def remove_subscription(self, subscription_id: str) -> bool:
        """
        Delete a subscription together with its imported events.

        Returns:
            False if no such subscription exists
        """
        subscription = self.subscription_registry.get_subscription(subscription_id)
        if subscription is None:
            return False

        self.event_store.replace_source(subscription.url, [])
        self.subscription_registry.delete_subscription(subscription_id)
        logger.info(f"Removed subscription '{subscription.name}'")
        return True

    def import_ics(self, content: str) -> SyncOutcome:
        """
        Import a user-supplied document as local events.

        Imported events carry no source tag, so no later sync replaces them.
        """
        if not is_valid_ics(content):
            return SyncOutcome(success=False, error=INVALID_FORMAT_ERROR)

        events = parse_ics(content)
        if not events:
            return SyncOutcome(success=False, error=NO_EVENTS_ERROR)

        try:
            self.event_store.insert_all(events)
        except Exception as e:
            logger.error(f"Import failed: {e}", exc_info=True)
            return SyncOutcome(success=False, error=_error_message(e))

        logger.info(f"Imported {len(events)} local events")
        return SyncOutcome(success=True, event_count=len(events))

    def export_all(self) -> Optional[str]:
        """Serialize every stored event, or None when the store is empty."""
        events = self.event_store.get_all()
        if not events:
            return None
        return export_to_ics(events, clock=self.clock)
