"""Data models for Calendly stats aggregation."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


CANONICAL_CATEGORIES = ('tour', 'orientation', 'other')

# Category keys that name a canonical bucket directly
CANONICAL_ALIASES = {
    'tour': 'tour',
    'tours': 'tour',
    'orientation': 'orientation',
    'orientations': 'orientation',
    'other': 'other',
}

# Maps a canonical category to its counter name in totals and staff rows.
CANONICAL_COUNTER = {
    'tour': 'tours',
    'orientation': 'orientations',
    'other': 'other',
}


@dataclass(frozen=True)
class Owner:
    """Resolved owner of an event type."""
    name: str
    uri: Optional[str] = None


@dataclass(frozen=True)
class EventType:
    """Active event type loaded from the catalog."""
    uri: str
    name: str
    slug: str
    category: str
    owner: Owner


@dataclass(frozen=True)
class Membership:
    """Staff membership attached to a scheduled event."""
    user: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'Membership':
        """
        Build a membership from the provider payload.

        Fallback order: ``user`` then ``user_uri`` for the URI, ``user_name``
        then ``name`` for the display name.
        """
        return cls(
            user=payload.get('user') or payload.get('user_uri') or None,
            user_name=payload.get('user_name') or payload.get('name') or None,
            user_email=payload.get('user_email') or None
        )


@dataclass(frozen=True)
class ScheduledEvent:
    """Scheduled event as returned by the provider."""
    uri: str
    name: Optional[str]
    status: str
    event_type: str
    start_time: Optional[str]
    end_time: Optional[str]
    event_duration: Optional[float]
    memberships: List[Membership] = field(default_factory=list)

    @property
    def is_canceled(self) -> bool:
        return self.status == 'canceled'

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'ScheduledEvent':
        memberships = [
            Membership.from_api(item)
            for item in payload.get('event_memberships') or []
            if isinstance(item, dict)
        ]
        return cls(
            uri=payload.get('uri') or '',
            name=payload.get('name'),
            status=str(payload.get('status') or '').lower(),
            event_type=payload.get('event_type') or '',
            start_time=payload.get('start_time'),
            end_time=payload.get('end_time'),
            event_duration=payload.get('event_duration'),
            memberships=memberships
        )


@dataclass(frozen=True)
class CategoryOverride:
    """Operator-configured category for one event type URI."""
    key: str
    label: str
    canonical: Optional[str] = None


@dataclass(frozen=True)
class Classification:
    """Result of classifying an event."""
    key: str
    label: str
    canonical: str

    @property
    def counter(self) -> str:
        return CANONICAL_COUNTER.get(self.canonical, 'other')


@dataclass
class CategoryTotal:
    """Running count for one category key."""
    key: str
    label: str
    canonical: str
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'count': self.count,
            'canonical': self.canonical,
            'key': self.key
        }


@dataclass
class EventTypeStat:
    """Running count for one event type."""
    uri: str
    name: str
    category: str
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uri': self.uri,
            'name': self.name,
            'category': self.category,
            'count': self.count
        }


@dataclass
class StaffAggregate:
    """Per-staff event counts for the reporting window."""
    key: str
    name: str
    email: str
    uri: str
    events: Dict[str, int] = field(
        default_factory=lambda: {'tours': 0, 'orientations': 0, 'other': 0}
    )
    total: int = 0
    hourly: List[int] = field(default_factory=lambda: [0] * 24)
    popular_hour: Optional[str] = None
    events_per_day: float = 0.0
    available_slots: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'email': self.email,
            'uri': self.uri,
            'events': dict(self.events),
            'total': self.total,
            'popular_hour': self.popular_hour,
            'events_per_day': self.events_per_day,
            'available_slots': self.available_slots
        }


@dataclass(frozen=True)
class PeriodWindow:
    """Concrete reporting window."""
    start: datetime
    end: datetime
    days: int

    @property
    def label(self) -> str:
        return f"{_format_day(self.start)} - {_format_day(self.end)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'start': int(self.start.timestamp()),
            'end': int(self.end.timestamp()),
            'days': self.days
        }


def _format_day(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"
