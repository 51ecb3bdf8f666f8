"""Reporting window resolution."""
import logging
import math
from datetime import datetime, timedelta, tzinfo
from typing import Any, Dict, Optional, Tuple

from analytics.models import PeriodWindow
from analytics.timeutil import from_timestamp, normalize_date

logger = logging.getLogger(__name__)

RANGE_PRESETS = ('mtd', 'last_month', 'qtd', 'last_quarter')

SECONDS_PER_DAY = 86400


def resolve_period_window(
    now: datetime,
    options: Dict[str, Any],
    default_days: int,
    tz: tzinfo
) -> Tuple[datetime, datetime]:
    """
    Resolve request options into a concrete (start, end) pair.

    An explicit ``start`` always wins over presets and relative days. The
    returned pair may be inverted when the caller supplied an explicit start
    after the end; use ``build_period`` to normalize it.

    Args:
        now: Current time (aware)
        options: Request options (start, end, range_preset, range_days)
        default_days: Lookback used when nothing else applies
        tz: Reporting timezone

    Returns:
        Tuple of (start, end) aware datetimes
    """
    end = normalize_date(options.get('end'), tz) or now

    start = normalize_date(options.get('start'), tz)
    if start is not None:
        return start, end

    preset = str(options.get('range_preset') or '').strip().lower()
    if preset in RANGE_PRESETS:
        return _resolve_preset(preset, end)
    if preset:
        logger.warning(f"Ignoring unknown range preset {preset!r}")

    try:
        days = int(options.get('range_days') or default_days)
    except (TypeError, ValueError):
        logger.warning(f"Invalid range_days {options.get('range_days')!r}, using {default_days}")
        days = int(default_days)
    days = max(1, days)

    return end - timedelta(days=days), end


def build_period(start: datetime, end: datetime) -> PeriodWindow:
    """Normalize an inverted pair and compute the window length in days."""
    if start > end:
        start, end = end, start
    return PeriodWindow(start=start, end=end, days=period_days(start, end))


def period_days(start: datetime, end: datetime) -> int:
    seconds = int(end.timestamp()) - int(start.timestamp())
    return max(1, math.ceil(max(1, seconds) / SECONDS_PER_DAY))


def comparison_window(
    start: datetime,
    end: datetime,
    tz: tzinfo
) -> Optional[PeriodWindow]:
    """
    Compute the prior window of equal length ending one second before start.

    Returns:
        PeriodWindow, or None when the prior window would end at or before
        the epoch
    """
    start_ts = int(start.timestamp())
    period_seconds = max(1, int(end.timestamp()) - start_ts)

    comparison_end_ts = start_ts - 1
    if comparison_end_ts <= 0:
        return None

    comparison_start_ts = max(0, comparison_end_ts - period_seconds)

    return build_period(
        from_timestamp(comparison_start_ts, tz),
        from_timestamp(comparison_end_ts, tz)
    )


def _resolve_preset(preset: str, end: datetime) -> Tuple[datetime, datetime]:
    month_start = end.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    if preset == 'mtd':
        return month_start, end

    if preset == 'last_month':
        previous_start = _shift_months(month_start, -1)
        return previous_start, _last_instant_before(month_start)

    quarter_month = ((end.month - 1) // 3) * 3 + 1
    quarter_start = month_start.replace(month=quarter_month)

    if preset == 'qtd':
        return quarter_start, end

    # last_quarter
    previous_start = _shift_months(quarter_start, -3)
    return previous_start, _last_instant_before(quarter_start)


def _shift_months(value: datetime, months: int) -> datetime:
    """Shift a first-of-month datetime by whole months."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    return value.replace(year=year, month=month + 1)


def _last_instant_before(boundary: datetime) -> datetime:
    return boundary - timedelta(seconds=1)
