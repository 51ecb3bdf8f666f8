"""AWS Lambda handler for Calendly stats collection."""
import json
import logging
import os
import re
import time
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from analytics.collector import StatsCollector
from calendly_api.client import CalendlyClient
from calendly_api.token_provider import TokenProvider
from storage.settings_store import DynamoDBBlockConfigSource, DynamoDBSettingsStore


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

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_options(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Translate an invocation payload into collector options.

    API Gateway query parameters use the dashboard names: ``range`` is
    either a number of days or a preset name, ``availability_days`` sets
    the availability window. Direct invocations may pass an ``options``
    dict, which takes precedence.

    Args:
        event: Lambda event payload

    Returns:
        Options dict for StatsCollector.collect()
    """
    options = {}
    query = event.get('queryStringParameters') or {}

    if query.get('start'):
        options['start'] = query['start']
    if query.get('end'):
        options['end'] = query['end']
    if query.get('availability_days') not in (None, ''):
        try:
            options['availability_window_days'] = int(query['availability_days'])
        except ValueError:
            logging.getLogger(__name__).warning(
                f"Ignoring non-numeric availability_days {query['availability_days']!r}"
            )
    if query.get('range') not in (None, ''):
        range_value = str(query['range']).strip()
        if range_value.isdigit():
            options['range_days'] = int(range_value)
        else:
            options['range_preset'] = re.sub(r'[^a-z_]', '', range_value.lower())

    direct = event.get('options')
    if isinstance(direct, dict):
        options.update(direct)

    return options


def _resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logging.getLogger(__name__).warning(f"Unknown timezone {name!r}, falling back to UTC")
        return ZoneInfo('UTC')


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for Calendly stats.

    Args:
        event: API Gateway or direct invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and the JSON stats body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'calendly-settings')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timezone_name = os.environ.get('TIMEZONE', 'UTC')
    site_base_url = os.environ.get('SITE_BASE_URL', '')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    event = event or {}
    query = event.get('queryStringParameters') or {}
    mode = event.get('mode') or query.get('mode') or 'stats'
    options = build_options(event)
    if mode == 'snapshot':
        options.setdefault('suppress_availability', True)

    logger.info(
        "Lambda execution started",
        extra={
            'table_name': table_name,
            'mode': mode,
            'options': options
        }
    )

    try:
        client = CalendlyClient(timeout=timeout_seconds)
        settings_store = DynamoDBSettingsStore(table_name=table_name)
        token_provider = TokenProvider(
            settings_store=settings_store,
            client=client,
            current_host=site_base_url
        )
        collector = StatsCollector(
            token_provider=token_provider,
            settings_store=settings_store,
            override_source=DynamoDBBlockConfigSource(table_name=table_name),
            client=client,
            tz=_resolve_timezone(timezone_name)
        )

        logger.info("Collecting Calendly stats")
        stats = collector.collect(options)

        duration = time.time() - start_time

        if stats.get('status') != 'ok':
            logger.error(
                f"Stats collection failed: {stats.get('message')}",
                extra={'duration_seconds': round(duration, 2)}
            )
            return {
                'statusCode': 500,
                'body': json.dumps(stats)
            }

        body = collector.build_snapshot_payload(stats) if mode == 'snapshot' else stats

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'events': stats['totals']['events'],
                'cancellations': stats['totals']['cancellations']
            }
        )

        return {
            'statusCode': 200,
            'body': json.dumps(body)
        }

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

        return {
            'statusCode': 500,
            'body': json.dumps({
                'status': 'error',
                'message': 'Stats collection failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }
