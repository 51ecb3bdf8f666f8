"""Unit tests for reporting window resolution."""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from analytics.period import (
    build_period,
    comparison_window,
    period_days,
    resolve_period_window,
)
from analytics.timeutil import format_hour_label, normalize_date, parse_api_timestamp

UTC = timezone.utc


@pytest.fixture
def now():
    """Fixed current time for window tests."""
    return datetime(2024, 3, 15, 13, 45, 10, tzinfo=UTC)


class TestResolvePeriodWindow:
    """Test cases for resolve_period_window."""

    def test_default_days_relative_to_now(self, now):
        """Test that the default lookback ends now."""
        start, end = resolve_period_window(now, {}, 30, UTC)

        assert end == now
        assert start == now - timedelta(days=30)

    def test_range_days_option(self, now):
        """Test that range_days overrides the default lookback."""
        start, end = resolve_period_window(now, {'range_days': 7}, 30, UTC)

        assert end - start == timedelta(days=7)

    def test_range_days_floors_at_one(self, now):
        """Test that a negative range is raised to one day."""
        start, end = resolve_period_window(now, {'range_days': -5}, 30, UTC)

        assert end - start == timedelta(days=1)

    def test_explicit_start_wins_over_preset(self, now):
        """Test that an explicit start ignores presets and relative days."""
        start, end = resolve_period_window(
            now,
            {'start': '2024-02-01', 'range_preset': 'mtd', 'range_days': 3},
            30,
            UTC
        )

        assert start == datetime(2024, 2, 1, tzinfo=UTC)
        assert end == now

    def test_explicit_end_used_for_relative_days(self, now):
        """Test that relative days are measured back from an explicit end."""
        start, end = resolve_period_window(now, {'end': '2024-01-31', 'range_days': 10}, 30, UTC)

        assert end == datetime(2024, 1, 31, tzinfo=UTC)
        assert start == datetime(2024, 1, 21, tzinfo=UTC)

    def test_epoch_timestamp_options(self, now):
        """Test that numeric timestamps are accepted."""
        start_ts = int(datetime(2024, 1, 1, tzinfo=UTC).timestamp())
        start, _ = resolve_period_window(now, {'start': start_ts}, 30, UTC)

        assert start == datetime(2024, 1, 1, tzinfo=UTC)

    def test_unparseable_end_falls_back_to_now(self, now):
        """Test that an invalid end date is ignored."""
        _, end = resolve_period_window(now, {'end': 'not-a-date'}, 30, UTC)

        assert end == now

    def test_mtd_preset(self, now):
        """Test month-to-date starts on the first of the end's month."""
        start, end = resolve_period_window(
            now, {'end': '2024-03-15', 'range_preset': 'mtd'}, 30, UTC
        )

        assert start == datetime(2024, 3, 1, 0, 0, 0, tzinfo=UTC)
        assert end == datetime(2024, 3, 15, tzinfo=UTC)

    def test_preset_is_case_insensitive(self, now):
        """Test that preset names are matched case-insensitively."""
        start, _ = resolve_period_window(now, {'range_preset': 'MTD'}, 30, UTC)

        assert start == datetime(2024, 3, 1, tzinfo=UTC)

    def test_mtd_is_independent_of_time_of_day(self):
        """Test that presets do not depend on the time of day."""
        morning = datetime(2024, 3, 15, 0, 5, tzinfo=UTC)
        evening = datetime(2024, 3, 15, 23, 55, tzinfo=UTC)

        start_morning, _ = resolve_period_window(morning, {'range_preset': 'mtd'}, 30, UTC)
        start_evening, _ = resolve_period_window(evening, {'range_preset': 'mtd'}, 30, UTC)

        assert start_morning == start_evening

    def test_last_month_preset(self, now):
        """Test last month spans the full previous calendar month."""
        start, end = resolve_period_window(now, {'range_preset': 'last_month'}, 30, UTC)

        assert start == datetime(2024, 2, 1, tzinfo=UTC)
        assert end == datetime(2024, 2, 29, 23, 59, 59, tzinfo=UTC)

    def test_last_month_preset_in_january(self):
        """Test last month wraps to December of the previous year."""
        january = datetime(2024, 1, 10, tzinfo=UTC)
        start, end = resolve_period_window(january, {'range_preset': 'last_month'}, 30, UTC)

        assert start == datetime(2023, 12, 1, tzinfo=UTC)
        assert end == datetime(2023, 12, 31, 23, 59, 59, tzinfo=UTC)

    def test_qtd_preset(self):
        """Test quarter-to-date starts on the quarter's first month."""
        august = datetime(2024, 8, 20, 10, 0, tzinfo=UTC)
        start, end = resolve_period_window(august, {'range_preset': 'qtd'}, 30, UTC)

        assert start == datetime(2024, 7, 1, tzinfo=UTC)
        assert end == august

    def test_last_quarter_preset_in_q2(self):
        """Test last quarter from Q2 covers January through March."""
        may = datetime(2024, 5, 20, 10, 0, tzinfo=UTC)
        start, end = resolve_period_window(may, {'range_preset': 'last_quarter'}, 30, UTC)

        assert start == datetime(2024, 1, 1, tzinfo=UTC)
        assert end == datetime(2024, 3, 31, 23, 59, 59, tzinfo=UTC)

    def test_last_quarter_preset_in_q1(self):
        """Test last quarter from Q1 wraps to the previous year's Q4."""
        february = datetime(2024, 2, 10, tzinfo=UTC)
        start, end = resolve_period_window(february, {'range_preset': 'last_quarter'}, 30, UTC)

        assert start == datetime(2023, 10, 1, tzinfo=UTC)
        assert end == datetime(2023, 12, 31, 23, 59, 59, tzinfo=UTC)

    def test_unknown_preset_falls_back_to_days(self, now):
        """Test that an unknown preset uses relative days."""
        start, end = resolve_period_window(now, {'range_preset': 'ytd'}, 14, UTC)

        assert end - start == timedelta(days=14)

    def test_presets_use_local_calendar(self):
        """Test that preset boundaries follow the configured timezone."""
        tz = ZoneInfo('America/New_York')
        now = datetime(2024, 3, 15, 12, 0, tzinfo=tz)
        start, _ = resolve_period_window(now, {'range_preset': 'mtd'}, 30, tz)

        assert start == datetime(2024, 3, 1, 0, 0, tzinfo=tz)
        assert start.utcoffset() == timedelta(hours=-5)


class TestBuildPeriod:
    """Test cases for period normalization."""

    def test_inverted_window_is_swapped(self):
        """Test that start <= end holds after normalization."""
        later = datetime(2024, 3, 10, tzinfo=UTC)
        earlier = datetime(2024, 3, 1, tzinfo=UTC)

        period = build_period(later, earlier)

        assert period.start == earlier
        assert period.end == later
        assert period.days == 9

    def test_days_rounds_up_partial_days(self):
        """Test that partial days count as a whole day."""
        start = datetime(2024, 3, 1, tzinfo=UTC)
        end = datetime(2024, 3, 2, 1, 0, tzinfo=UTC)

        assert period_days(start, end) == 2

    def test_days_floors_at_one(self):
        """Test that an empty window still counts as one day."""
        moment = datetime(2024, 3, 1, tzinfo=UTC)

        assert period_days(moment, moment) == 1

    def test_period_to_dict(self):
        """Test the serialized period shape."""
        period = build_period(
            datetime(2024, 3, 1, tzinfo=UTC),
            datetime(2024, 3, 15, tzinfo=UTC)
        )

        payload = period.to_dict()

        assert payload['label'] == 'Mar 1, 2024 - Mar 15, 2024'
        assert payload['start'] == int(datetime(2024, 3, 1, tzinfo=UTC).timestamp())
        assert payload['end'] == int(datetime(2024, 3, 15, tzinfo=UTC).timestamp())
        assert payload['days'] == 14


class TestComparisonWindow:
    """Test cases for the prior comparison window."""

    def test_equal_length_ending_before_start(self):
        """Test the comparison window mirrors the primary window."""
        start = datetime(2024, 3, 1, tzinfo=UTC)
        end = datetime(2024, 3, 15, tzinfo=UTC)

        window = comparison_window(start, end, UTC)

        assert window.end == start - timedelta(seconds=1)
        assert (window.end - window.start) == (end - start)
        assert window.days == 14

    def test_clamped_to_epoch(self):
        """Test that the comparison start never precedes the epoch."""
        start = datetime.fromtimestamp(100, UTC)
        end = datetime.fromtimestamp(1000, UTC)

        window = comparison_window(start, end, UTC)

        assert window.start == datetime.fromtimestamp(0, UTC)
        assert window.end == datetime.fromtimestamp(99, UTC)

    def test_none_when_ending_at_epoch(self):
        """Test that no comparison exists when it would end at the epoch."""
        start = datetime.fromtimestamp(1, UTC)
        end = datetime.fromtimestamp(500, UTC)

        assert comparison_window(start, end, UTC) is None


class TestTimeHelpers:
    """Test cases for date parsing helpers."""

    def test_normalize_date_us_format(self):
        """Test US formatted dates."""
        assert normalize_date('03/15/2024', UTC) == datetime(2024, 3, 15, tzinfo=UTC)

    def test_normalize_date_full_month_name(self):
        """Test full month name dates."""
        assert normalize_date('March 15, 2024', UTC) == datetime(2024, 3, 15, tzinfo=UTC)

    def test_normalize_date_iso_with_offset(self):
        """Test ISO strings keep their instant and convert to the timezone."""
        value = normalize_date('2024-03-15T10:00:00-04:00', UTC)

        assert value == datetime(2024, 3, 15, 14, 0, tzinfo=UTC)

    def test_normalize_date_invalid(self):
        """Test that invalid dates return None."""
        assert normalize_date('invalid-date', UTC) is None
        assert normalize_date('', UTC) is None
        assert normalize_date(None, UTC) is None

    def test_normalize_date_out_of_range_epoch(self):
        """Test epochs beyond the supported year range return None."""
        assert normalize_date(10 ** 12, UTC) is None
        assert normalize_date(-1e20, UTC) is None

    def test_out_of_range_end_falls_back_to_now(self, now):
        """Test an unusable end option resolves to the current time."""
        start, end = resolve_period_window(now, {'end': 10 ** 12}, 7, UTC)

        assert end == now
        assert start == now - timedelta(days=7)

    def test_parse_api_timestamp_converts_timezone(self):
        """Test provider timestamps are converted to local time."""
        tz = ZoneInfo('America/Chicago')
        value = parse_api_timestamp('2024-03-05T15:30:00.000000Z', tz)

        assert value.hour == 9
        assert value.minute == 30

    def test_parse_api_timestamp_invalid(self):
        """Test unparseable timestamps return None."""
        assert parse_api_timestamp('garbage', UTC) is None
        assert parse_api_timestamp(None, UTC) is None

    def test_parse_api_timestamp_non_string(self):
        """Test non-string timestamps return None."""
        assert parse_api_timestamp(1709652600, UTC) is None
        assert parse_api_timestamp({'at': 'now'}, UTC) is None

    def test_format_hour_label(self):
        """Test chart-friendly hour labels."""
        assert format_hour_label(0) == '12 am'
        assert format_hour_label(9) == '9 am'
        assert format_hour_label(12) == '12 pm'
        assert format_hour_label(17) == '5 pm'
        assert format_hour_label(None) is None
