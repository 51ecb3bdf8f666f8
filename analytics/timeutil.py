"""Date and time helpers shared by the stats pipeline."""
import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Formats accepted for user-supplied dates, tried after ISO 8601
DATE_FORMATS = [
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%m/%d/%Y',      # US format
    '%m-%d-%Y',      # US format with dashes
    '%B %d, %Y',     # Full month name
    '%b %d, %Y',     # Abbreviated month name
    '%Y/%m/%d',
]


def normalize_date(value: Any, tz: tzinfo) -> Optional[datetime]:
    """
    Normalize a user-supplied date to an aware datetime in ``tz``.

    Args:
        value: datetime, date, epoch seconds (int, float or numeric string),
            or a date string
        tz: Timezone used for naive values and for the result

    Returns:
        Aware datetime, or None if the value is empty or unparseable
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        return _localize(value, tz)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=tz)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz)
        except (ValueError, OverflowError, OSError):
            logger.warning(f"Epoch {value!r} is out of range for Calendly stats")
            return None

    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromtimestamp(float(text), tz)
        except (ValueError, OverflowError, OSError):
            pass

        parsed = _parse_iso(text)
        if parsed is None:
            for fmt in DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue

        if parsed is not None:
            return _localize(parsed, tz)

    logger.warning(f"Unable to parse date {value!r} for Calendly stats")
    return None


def parse_api_timestamp(value: Optional[str], tz: tzinfo) -> Optional[datetime]:
    """
    Convert a provider timestamp (ISO 8601, usually UTC) to ``tz``.

    Returns:
        Aware datetime, or None if the value is missing or unparseable
    """
    if not value:
        return None

    parsed = _parse_iso(value)
    if parsed is None:
        logger.warning(f"Failed to parse Calendly timestamp {value!r}")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(tz)


def to_utc_iso(value: datetime) -> str:
    """Format an aware datetime as an ISO 8601 UTC string with offset."""
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def from_timestamp(seconds: int, tz: tzinfo) -> datetime:
    return datetime.fromtimestamp(seconds, tz)


def format_hour_label(hour: Optional[int]) -> Optional[str]:
    """
    Format an hour of the day as a chart label.

    Args:
        hour: Hour in 0-23

    Returns:
        Label such as "9 am" or "12 pm", or None if hour is None
    """
    if hour is None:
        return None
    display = hour % 12 or 12
    suffix = 'am' if hour < 12 else 'pm'
    return f"{display} {suffix}"


def _parse_iso(text: Any) -> Optional[datetime]:
    if not isinstance(text, str):
        return None
    candidate = text.strip()
    if candidate.endswith('Z') or candidate.endswith('z'):
        candidate = candidate[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None


def _localize(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)
