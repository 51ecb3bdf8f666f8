"""Stats collection orchestrator."""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from analytics.aggregator import AggregationResult, EventAggregator, extract_top_hours
from analytics.availability import AvailabilitySummarizer, build_availability_index
from analytics.classifier import KeywordMap, build_keyword_map
from analytics.models import CategoryOverride, EventType, PeriodWindow, StaffAggregate
from analytics.overrides import OverrideCache
from analytics.period import build_period, comparison_window, resolve_period_window
from calendly_api.catalog import EventTypeCatalogLoader
from calendly_api.client import CalendlyClient, auth_headers
from calendly_api.scheduled_events import ScheduledEventLoader

logger = logging.getLogger(__name__)

MISSING_TOKEN_MESSAGE = 'Missing Calendly token. Re-authorize the integration.'
PROFILE_ERROR_MESSAGE = 'Unable to load Calendly user profile.'

DELTA_KEYS = ('events', 'tours', 'orientations', 'other')


@dataclass(frozen=True)
class StatsSettings:
    """Stats defaults read from the settings store."""
    default_days: int = 30
    availability_window_days: int = 14
    tour_keywords: str = 'tour'
    orientation_keywords: str = 'orientation,orient'

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> 'StatsSettings':
        return cls(
            default_days=max(1, _as_int(settings.get('stats_default_days'), cls.default_days)),
            availability_window_days=max(
                1, _as_int(settings.get('stats_availability_window_days'), cls.availability_window_days)
            ),
            tour_keywords=_or_default(settings.get('stats_tour_keywords'), cls.tour_keywords),
            orientation_keywords=_or_default(
                settings.get('stats_orientation_keywords'), cls.orientation_keywords
            )
        )


def _as_int(value: Any, default: int) -> int:
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _or_default(value: Any, default: str) -> str:
    return default if value is None else str(value)


def detect_leader(rows: List[StaffAggregate], value: Callable[[StaffAggregate], int]) -> Optional[Dict[str, Any]]:
    """Find the row with the highest strictly positive value, first seen on ties."""
    leader = None
    for row in rows:
        current = value(row)
        if current <= 0:
            continue
        if leader is None or current > leader['value']:
            leader = {'name': row.name or 'Unknown', 'value': current}
    return leader


def build_snapshot(stats: Mapping[str, Any]) -> Dict[str, Any]:
    """Reduce a stats payload to its headline KPIs."""
    totals = stats.get('totals') or {}
    leaders = stats.get('leaders') or {}
    top_hours = (stats.get('time_distribution') or {}).get('top_hours') or []

    return {
        'total_events': totals.get('events', 0),
        'tours': totals.get('tours', 0),
        'orientations': totals.get('orientations', 0),
        'other_meetings': totals.get('other', 0),
        'popular_hour': top_hours[0]['label'] if top_hours else None,
        'top_staff_tours': (leaders.get('most_tours') or {}).get('name'),
        'top_staff_orientations': (leaders.get('most_orientations') or {}).get('name'),
    }


class StatsCollector:
    """Builds utilization and availability stats from the Calendly API."""

    def __init__(
        self,
        token_provider,
        settings_store,
        override_source=None,
        client: Optional[CalendlyClient] = None,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the collector.

        Args:
            token_provider: Object with ``get_valid_access_token()``
            settings_store: Object with ``load()`` returning the settings mapping
            override_source: Object with ``list_block_configs()``, or None
            client: Calendly API client
            tz: Reporting timezone
            clock: Returns the current epoch time in seconds
        """
        self.token_provider = token_provider
        self.settings_store = settings_store
        self.override_source = override_source
        self.client = client or CalendlyClient()
        self.tz = tz
        self.clock = clock

        self.catalog_loader = EventTypeCatalogLoader(self.client)
        self.event_loader = ScheduledEventLoader(self.client)
        self.aggregator = EventAggregator(tz)
        self.availability = AvailabilitySummarizer(self.client)

    def collect(self, options: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Collect stats for the requested period.

        Args:
            options: start, end, range_days, range_preset,
                availability_window_days, suppress_availability

        Returns:
            Stats payload with status "ok", or an error payload with
            status "error" and a message
        """
        options = dict(options or {})
        settings = StatsSettings.from_mapping(self.settings_store.load())

        default_days = settings.default_days
        if options.get('range_days'):
            default_days = max(1, _as_int(options['range_days'], default_days))
        availability_days = _as_int(options.get('availability_window_days'), settings.availability_window_days)
        suppress_availability = bool(options.get('suppress_availability'))

        override_cache = OverrideCache(self.override_source)

        now = self._now()
        start, end = resolve_period_window(now, options, default_days, self.tz)
        period = build_period(start, end)
        logger.info(
            f"Collecting Calendly stats for {period.label}",
            extra={'period_days': period.days, 'suppress_availability': suppress_availability}
        )

        token = self.token_provider.get_valid_access_token()
        if not token:
            logger.error("No Calendly access token available")
            return self._error(MISSING_TOKEN_MESSAGE)

        headers = auth_headers(token)

        profile = self._fetch_current_user(headers)
        if profile is None:
            return self._error(PROFILE_ERROR_MESSAGE)

        resource = profile.get('resource') or {}
        organization_uri = resource.get('current_organization')
        user_uri = resource.get('uri')

        keyword_map = build_keyword_map(settings.tour_keywords, settings.orientation_keywords)
        overrides = override_cache.get()
        catalog = self.catalog_loader.load(headers, organization_uri, user_uri, keyword_map)
        events = self.event_loader.load(headers, organization_uri, user_uri, period.start, period.end)

        result = self.aggregator.aggregate(events, catalog, overrides, keyword_map)

        if suppress_availability:
            availability = self.availability.disabled()
        else:
            availability = self.availability.summarize(catalog, headers, availability_days, now)

        result.finalize_staff(period.days, build_availability_index(availability))
        staff = result.sorted_staff()

        leaders = {
            'most_tours': detect_leader(staff, lambda row: row.events['tours']),
            'most_orientations': detect_leader(staff, lambda row: row.events['orientations']),
            'most_available_slots': (availability.get('leaders') or {}).get('most_available_slots'),
        }

        categories = [row.to_dict() for row in result.sorted_categories()]
        totals = dict(result.totals)
        totals['avg_daily_events'] = round(totals['events'] / period.days, 2)

        stats = {
            'status': 'ok',
            'generated': int(self.clock()),
            'period': period.to_dict(),
            'totals': totals,
            'staff': [row.to_dict() for row in staff],
            'event_types': [row.to_dict() for row in result.sorted_event_types()],
            'time_distribution': {
                'hourly': list(result.hourly),
                'weekday': dict(result.weekday),
                'buckets': dict(result.buckets),
                'top_hours': extract_top_hours(result.hourly),
            },
            'availability_window': availability,
            'leaders': leaders,
            'categories': categories,
            'categories_by_key': {row['key']: row for row in categories},
            'meta': {
                'events_considered': len(events),
                'event_types_evaluated': len(catalog),
            },
        }
        stats['snapshot'] = build_snapshot(stats)

        previous = comparison_window(period.start, period.end, self.tz)
        if previous is not None:
            stats['comparison'] = self._build_comparison(
                previous,
                headers,
                organization_uri,
                user_uri,
                catalog,
                overrides,
                keyword_map,
                result
            )

        logger.info(
            f"Collected Calendly stats: {totals['events']} events, "
            f"{totals['tours']} tours, {totals['orientations']} orientations"
        )
        return stats

    def build_snapshot_payload(self, stats: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Reduce stats to the snapshot KPIs.

        Collects with availability suppressed when no stats are given.

        Returns:
            Snapshot dict, or an empty dict when the stats are an error result
        """
        if stats is None:
            stats = self.collect({'suppress_availability': True})
        if stats.get('status', 'error') != 'ok':
            return {}
        return build_snapshot(stats)

    def _build_comparison(
        self,
        window: PeriodWindow,
        headers: Dict[str, str],
        organization_uri: Optional[str],
        user_uri: Optional[str],
        catalog: Mapping[str, EventType],
        overrides: Mapping[str, CategoryOverride],
        keyword_map: KeywordMap,
        current: AggregationResult
    ) -> Dict[str, Any]:
        """Recompute totals and categories for the prior window."""
        events = self.event_loader.load(headers, organization_uri, user_uri, window.start, window.end)
        result = self.aggregator.aggregate(events, catalog, overrides, keyword_map)
        categories = [row.to_dict() for row in result.sorted_categories()]

        return {
            'period': window.to_dict(),
            'totals': dict(result.totals),
            'categories': categories,
            'categories_by_key': {row['key']: row for row in categories},
            'deltas': {
                key: current.totals[key] - result.totals[key]
                for key in DELTA_KEYS
            },
        }

    def _fetch_current_user(self, headers: Dict[str, str]) -> Optional[Dict[str, Any]]:
        try:
            return self.client.fetch_current_user(headers)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to load Calendly user profile: {e}")
            return None

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), self.tz)

    def _error(self, message: str) -> Dict[str, Any]:
        return {
            'status': 'error',
            'message': message,
            'generated': int(self.clock()),
        }
