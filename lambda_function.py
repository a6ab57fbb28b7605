"""AWS Lambda handler for calendar subscription sync."""
import json
import logging
import os
import time
from typing import Dict, Any

from calendar_sync.sync_service import SubscriptionSyncService
from feed.ics_feed_fetcher import ICSFeedFetcher
from storage.dynamodb_event_store import DynamoDBEventStore
from storage.dynamodb_subscription_registry import DynamoDBSubscriptionRegistry


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

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def build_sync_service() -> SubscriptionSyncService:
    """Wire the sync service from environment configuration."""
    events_table = os.environ.get('EVENTS_TABLE_NAME', 'calendar-events')
    subscriptions_table = os.environ.get('SUBSCRIPTIONS_TABLE_NAME', 'calendar-subscriptions')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    max_retries = int(os.environ.get('MAX_RETRIES', '3'))
    max_workers = int(os.environ.get('MAX_WORKERS', '1'))

    return SubscriptionSyncService(
        fetcher=ICSFeedFetcher(timeout=timeout_seconds, max_retries=max_retries),
        event_store=DynamoDBEventStore(table_name=events_table),
        subscription_registry=DynamoDBSubscriptionRegistry(table_name=subscriptions_table),
        max_workers=max_workers
    )


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler.

    Supported payloads:
        {"action": "sync_all"} (default, e.g. from an EventBridge schedule)
        {"action": "sync_one", "subscription_id": "..."}
        {"action": "export"}

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)

    action = (event or {}).get('action', 'sync_all')
    start_time = time.time()
    logger.info("Lambda execution started", extra={'action': action})

    try:
        service = build_sync_service()

        if action == 'sync_all':
            result = service.sync_all()
            duration = time.time() - start_time
            logger.info(
                f"Sync finished: {result.succeeded_count} succeeded, "
                f"{result.failed_count} failed",
                extra={'duration_seconds': round(duration, 2)}
            )
            return _response(200 if result.overall_success else 207, {
                'message': 'Sync completed successfully' if result.overall_success
                else 'Sync completed with errors',
                'statistics': {
                    'succeeded': result.succeeded_count,
                    'failed': result.failed_count,
                    'duration_seconds': round(duration, 2)
                },
                'errors': result.errors
            })

        if action == 'sync_one':
            subscription_id = event.get('subscription_id')
            if not subscription_id:
                return _response(400, {'message': 'subscription_id is required'})

            outcome = service.sync_one(subscription_id)
            body = {
                'message': 'Sync completed successfully' if outcome.success else 'Sync failed',
                'event_count': outcome.event_count,
            }
            if outcome.error:
                body['error'] = outcome.error
            return _response(200 if outcome.success else 502, body)

        if action == 'export':
            document = service.export_all()
            if document is None:
                return _response(404, {'message': 'No events to export'})
            return _response(200, {'message': 'Export completed', 'ics': document})

        return _response(400, {'message': f"Unknown action: {action}"})

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
        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
