"""Aggregation of scheduled events into stats breakdowns."""
import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Dict, Iterable, List, Mapping, Optional

from analytics.classifier import CategoryClassifier, KeywordMap
from analytics.models import (
    CategoryOverride,
    CategoryTotal,
    EventType,
    EventTypeStat,
    ScheduledEvent,
    StaffAggregate,
)
from analytics.timeutil import format_hour_label, parse_api_timestamp

logger = logging.getLogger(__name__)

WEEKDAYS = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
DAYPARTS = ('morning', 'midday', 'afternoon', 'evening', 'late')
TOP_HOURS_LIMIT = 5

UNASSIGNED_NAME = 'Unassigned'
UNASSIGNED_KEY = 'unassigned'


def bucket_hour(hour: int) -> str:
    """Assign an hour of the day to a daypart bucket."""
    if 6 <= hour < 11:
        return 'morning'
    if 11 <= hour < 14:
        return 'midday'
    if 14 <= hour < 18:
        return 'afternoon'
    if 18 <= hour < 22:
        return 'evening'
    return 'late'


def determine_top_hour(hourly: List[int]) -> Optional[int]:
    """Return the hour with the strictly highest count, earliest on ties."""
    top_hour = None
    for hour, count in enumerate(hourly):
        if count <= 0:
            continue
        if top_hour is None or count > hourly[top_hour]:
            top_hour = hour
    return top_hour


def extract_top_hours(hourly: List[int], limit: int = TOP_HOURS_LIMIT) -> List[Dict[str, Any]]:
    """
    List the busiest hours.

    Returns:
        Up to ``limit`` entries of {hour, label, value}, busiest first,
        earlier hours first on ties
    """
    ranked = sorted(
        ((hour, count) for hour, count in enumerate(hourly) if count > 0),
        key=lambda entry: entry[1],
        reverse=True
    )
    return [
        {'hour': hour, 'label': format_hour_label(hour), 'value': count}
        for hour, count in ranked[:limit]
    ]


def resolve_staff(event: ScheduledEvent, event_type: Optional[EventType]) -> Dict[str, str]:
    """
    Derive the staff identity for an event.

    Uses the first membership: ``user`` URI, then ``user_name``, then the
    event type owner, defaulting to "Unassigned".

    Returns:
        Dict with key, name, email and uri
    """
    membership = event.memberships[0] if event.memberships else None
    owner = event_type.owner if event_type else None

    uri = (membership.user if membership else None) or (owner.uri if owner else None) or ''
    name = (membership.user_name if membership else None) or (owner.name if owner else None) or UNASSIGNED_NAME
    email = (membership.user_email if membership else None) or ''

    key = uri or name.lower() or UNASSIGNED_KEY

    return {
        'key': key,
        'name': name,
        'email': email,
        'uri': uri,
    }


@dataclass
class AggregationResult:
    """Raw aggregates for one pass over scheduled events."""
    totals: Dict[str, int] = field(default_factory=lambda: {
        'events': 0,
        'tours': 0,
        'orientations': 0,
        'other': 0,
        'cancellations': 0,
    })
    staff: Dict[str, StaffAggregate] = field(default_factory=dict)
    event_types: Dict[str, EventTypeStat] = field(default_factory=dict)
    categories: Dict[str, CategoryTotal] = field(default_factory=dict)
    hourly: List[int] = field(default_factory=lambda: [0] * 24)
    weekday: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(WEEKDAYS, 0))
    buckets: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(DAYPARTS, 0))

    def sorted_staff(self) -> List[StaffAggregate]:
        return sorted(self.staff.values(), key=lambda row: row.total, reverse=True)

    def sorted_event_types(self) -> List[EventTypeStat]:
        return sorted(self.event_types.values(), key=lambda row: row.count, reverse=True)

    def sorted_categories(self) -> List[CategoryTotal]:
        return sorted(self.categories.values(), key=lambda row: row.count, reverse=True)

    def finalize_staff(self, period_days: int, availability_index: Mapping[str, Dict[str, Any]]) -> None:
        """
        Derive per-staff popular hour, events per day and available slots.

        The availability join uses the staff URI, falling back to the name.
        """
        days = max(1, period_days)
        for row in self.staff.values():
            row.popular_hour = format_hour_label(determine_top_hour(row.hourly))
            row.events_per_day = round(row.total / days, 2)
            lookup_key = row.uri or row.name
            entry = availability_index.get(lookup_key) if lookup_key else None
            row.available_slots = entry['slots'] if entry else None


class EventAggregator:
    """Classifies scheduled events and accumulates them into breakdowns."""

    def __init__(self, tz: tzinfo, classifier: Optional[CategoryClassifier] = None):
        """
        Args:
            tz: Local timezone for hour, weekday and daypart distribution
            classifier: Category classifier (default: CategoryClassifier())
        """
        self.tz = tz
        self.classifier = classifier or CategoryClassifier()

    def aggregate(
        self,
        events: Iterable[ScheduledEvent],
        catalog: Mapping[str, EventType],
        overrides: Mapping[str, CategoryOverride],
        keyword_map: KeywordMap
    ) -> AggregationResult:
        """
        Aggregate scheduled events in a single pass.

        Canceled events only increment ``cancellations``.

        Args:
            events: Scheduled events in fetch order
            catalog: Event types keyed by URI
            overrides: Category overrides keyed by event type URI
            keyword_map: Tour and orientation keywords

        Returns:
            AggregationResult with unsorted, insertion-ordered breakdowns
        """
        result = AggregationResult()

        for event in events:
            if event.is_canceled:
                result.totals['cancellations'] += 1
                continue
            self._add_event(result, event, catalog, overrides, keyword_map)

        logger.info(
            f"Aggregated {result.totals['events']} events "
            f"({result.totals['cancellations']} canceled)"
        )
        return result

    def _add_event(
        self,
        result: AggregationResult,
        event: ScheduledEvent,
        catalog: Mapping[str, EventType],
        overrides: Mapping[str, CategoryOverride],
        keyword_map: KeywordMap
    ) -> None:
        event_type = catalog.get(event.event_type)
        classification = self.classifier.classify(event.event_type, event_type, overrides, keyword_map)

        category = result.categories.get(classification.key)
        if category is None:
            category = result.categories[classification.key] = CategoryTotal(
                key=classification.key,
                label=classification.label,
                canonical=classification.canonical
            )
        category.label = classification.label
        category.canonical = classification.canonical
        category.count += 1

        counter = classification.counter
        result.totals[counter] += 1
        result.totals['events'] += 1

        start = parse_api_timestamp(event.start_time, self.tz)
        hour = start.hour if start else None
        if start is not None:
            result.hourly[hour] += 1
            result.weekday[WEEKDAYS[start.weekday()]] += 1
            result.buckets[bucket_hour(hour)] += 1

        name = event_type.name if event_type else (event.name or 'Scheduled Event')
        type_stat = result.event_types.get(event.event_type)
        if type_stat is None:
            type_stat = result.event_types[event.event_type] = EventTypeStat(
                uri=event.event_type,
                name=name,
                category=classification.label
            )
        type_stat.name = name
        type_stat.category = classification.label
        type_stat.count += 1

        identity = resolve_staff(event, event_type)
        staff = result.staff.get(identity['key'])
        if staff is None:
            staff = result.staff[identity['key']] = StaffAggregate(
                key=identity['key'],
                name=identity['name'],
                email=identity['email'],
                uri=identity['uri']
            )
        staff.events[counter] += 1
        staff.total += 1
        if hour is not None:
            staff.hourly[hour] += 1
