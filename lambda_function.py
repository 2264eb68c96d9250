"""AWS Lambda handler for the academic schedule sync and reminders."""
import json
import logging
import time
from typing import Any, Dict

from app import build_application
from scraper.calendar_fetcher import CalendarFetchError
from settings import ConfigurationError, Settings
from storage.dynamodb_manager import StorageError

ACTIONS = ('sync', 'morning_briefing', 'evening_preparation', 'exam_alerts', 'command')


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

        return json.dumps(log_data, ensure_ascii=False)


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


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps(body, ensure_ascii=False)
    }


def _error_response(message: str, error: Exception, start_time: float, **extra) -> Dict[str, Any]:
    body = {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    }
    body.update(extra)
    return _response(500, body)


def resolve_action(event: Dict[str, Any]) -> str:
    """
    Pick the action for an invocation.

    Direct invocations pass {"action": ...}; EventBridge rules may carry it
    in "detail". Plain scheduled events default to a calendar sync.
    """
    event = event or {}
    action = event.get('action') or (event.get('detail') or {}).get('action') or 'sync'
    return str(action)


def is_sync_command(event: Dict[str, Any]) -> bool:
    """Only the /sync command reaches the calendar; lookups read storage."""
    if resolve_action(event) != 'command':
        return False
    words = str(event.get('text') or '').split()
    return bool(words) and words[0].split('@')[0].lower() == '/sync'


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Args:
        event: Invocation payload, e.g. {"action": "sync"} or
            {"action": "command", "text": "/today"}
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    start_time = time.time()
    event = event or {}

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return _error_response('Invalid configuration', e, start_time)

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    action = resolve_action(event)
    logger.info(
        f"Lambda execution started: {action}",
        extra={'action': action, 'table_prefix': settings.table_prefix}
    )

    if action not in ACTIONS:
        return _response(400, {'message': f"Unknown action: {action}", 'actions': list(ACTIONS)})

    try:
        settings.validate(
            need_calendar=action == 'sync' or is_sync_command(event),
            need_channel=action not in ('sync', 'command')
        )
        application = build_application(settings)

        if action == 'sync':
            try:
                result = application.synchronizer.run()
            except CalendarFetchError as e:
                logger.error(f"Failed to fetch calendar events: {e}", exc_info=True)
                return _error_response('Failed to fetch calendar events', e, start_time)
            except StorageError as e:
                # Records written before the failure stay in place
                logger.error(f"Error during DynamoDB sync operation: {e}", exc_info=True)
                return _error_response(
                    'Failed to sync events with DynamoDB', e, start_time,
                    note='Previously synced events remain in DynamoDB'
                )

            duration = time.time() - start_time
            logger.info(
                "Lambda execution completed successfully",
                extra={'duration_seconds': round(duration, 2), **result.to_dict()}
            )
            return _response(200, {
                'message': 'Sync completed successfully',
                'statistics': {**result.to_dict(), 'duration_seconds': round(duration, 2)}
            })

        if action == 'command':
            reply = application.commands.handle(event.get('text', ''))
            return _response(200, {'reply': reply})

        if action == 'morning_briefing':
            outcome = {'sent': application.jobs.send_daily_briefing()}
        elif action == 'evening_preparation':
            outcome = {'sent': application.jobs.send_preparation_notification()}
        else:
            outcome = {'alerts_sent': application.jobs.check_exam_alerts()}

        outcome['duration_seconds'] = round(time.time() - start_time, 2)
        logger.info(f"Job {action} finished", extra=outcome)
        return _response(200, {'message': f"{action} completed", **outcome})

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(f"{action} failed", e, start_time)
