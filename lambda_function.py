"""AWS Lambda handler for the community events calendar import."""
import json
import logging
import time
from typing import Any, Dict

from pipeline.config import PipelineConfig
from pipeline.orchestrator import ImportPipeline
from storage.dynamodb_manager import DynamoDBManager
from storage.maintenance import cleanup_duplicates

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any ``extra`` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


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


def run_import(config: PipelineConfig, start_time: float) -> Dict[str, Any]:
    """Run the feed import and build the summary response."""
    logger = logging.getLogger(__name__)
    if not config.feed_urls:
        logger.warning("No ICS feed URLs configured, running sweep only")

    pipeline = ImportPipeline.from_config(config)
    summary = pipeline.run(config.feed_urls)
    duration = time.time() - start_time

    logger.info(
        "Import completed",
        extra={
            'duration_seconds': round(duration, 2),
            'events_inserted': summary.inserted,
            'events_updated': summary.updated,
            'events_marked_past': summary.marked_past,
            'feeds_failed': summary.feeds_failed
        }
    )

    message = 'Import completed' if config.feed_urls else 'No ICS URLs configured'
    return _response(200, {
        'message': message,
        'statistics': {
            'feeds_processed': summary.feeds_processed,
            'feeds_failed': summary.feeds_failed,
            'events_inserted': summary.inserted,
            'events_updated': summary.updated,
            'events_unchanged': summary.unchanged,
            'events_skipped': summary.skipped,
            'events_marked_past': summary.marked_past,
            'duration_seconds': round(duration, 2)
        },
        'errors': summary.errors
    })


def run_cleanup(config: PipelineConfig, start_time: float) -> Dict[str, Any]:
    """Delete duplicate rows and report how many were removed."""
    deleted = cleanup_duplicates(DynamoDBManager(table_name=config.table_name))
    return _response(200, {
        'message': f'Cleaned up {deleted} duplicate events',
        'deleted_count': deleted,
        'duration_seconds': round(time.time() - start_time, 2)
    })


ACTIONS = {
    'import': run_import,
    'cleanup-duplicates': run_cleanup,
}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for the calendar import.

    Args:
        event: Scheduler or admin invocation payload; ``action`` selects
            "import" (default) or "cleanup-duplicates"
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    start_time = time.time()
    action = (event or {}).get('action', 'import')

    try:
        config = PipelineConfig.from_env()
    except ValueError as e:
        setup_logging()
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return _response(500, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__
        })

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)
    logger.info(
        "Lambda execution started",
        extra={
            'action': action,
            'table_name': config.table_name,
            'feed_count': len(config.feed_urls),
            'timeout_seconds': config.timeout_seconds
        }
    )

    handler = ACTIONS.get(action)
    if handler is None:
        logger.warning(f"Unknown action requested: {action}")
        return _response(400, {'message': f'Unknown action: {action}'})

    try:
        return handler(config, start_time)
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
            'message': 'Import failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
