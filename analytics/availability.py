"""Forward-looking availability summary per staff member."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping

import requests

from analytics.models import EventType
from analytics.timeutil import to_utc_iso
from calendly_api.client import CalendlyClient

logger = logging.getLogger(__name__)

MIN_WINDOW_DAYS = 1
MAX_WINDOW_DAYS = 60


def clamp_window_days(window_days: Any) -> int:
    try:
        days = int(window_days)
    except (TypeError, ValueError):
        days = MIN_WINDOW_DAYS
    return max(MIN_WINDOW_DAYS, min(MAX_WINDOW_DAYS, days))


def build_availability_index(summary: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Index availability rows by owner URI, falling back to owner name.

    Two owners sharing a name without URIs land on the same key.
    """
    index = {}
    for row in summary.get('staff') or []:
        if not isinstance(row, Mapping):
            continue
        key = row.get('uri') or row.get('name')
        if not key:
            continue
        index[key] = {
            'slots': row.get('slots', 0),
            'name': row.get('name', ''),
        }
    return index


class AvailabilitySummarizer:
    """Counts open slots per event type and ranks owners by slot count."""

    def __init__(self, client: CalendlyClient):
        self.client = client

    @staticmethod
    def disabled() -> Dict[str, Any]:
        return {'enabled': False}

    def summarize(
        self,
        catalog: Mapping[str, EventType],
        headers: Dict[str, str],
        window_days: Any,
        now: datetime
    ) -> Dict[str, Any]:
        """
        Summarize open slots over [now, now + window_days).

        Args:
            catalog: Event types keyed by URI
            headers: Authenticated request headers
            window_days: Requested window, clamped to 1..60 days
            now: Window start (aware)

        Returns:
            Dict with enabled, days, total_slots, staff and leaders
        """
        days = clamp_window_days(window_days)
        window_end = now + timedelta(days=days)

        staff = {}
        total_slots = 0

        for event_type in catalog.values():
            slot_count = self.count_available_slots(event_type.uri, headers, now, window_end)
            if slot_count <= 0:
                continue

            owner = event_type.owner
            owner_key = owner.uri or owner.name or event_type.uri
            row = staff.get(owner_key)
            if row is None:
                row = staff[owner_key] = {
                    'name': owner.name or 'Unassigned',
                    'uri': owner.uri,
                    'slots': 0,
                    'event_types': {},
                }

            row['slots'] += slot_count
            row['event_types'][event_type.name] = row['event_types'].get(event_type.name, 0) + slot_count
            total_slots += slot_count

        rows = []
        for row in staff.values():
            breakdown = sorted(row['event_types'].items(), key=lambda item: item[1], reverse=True)
            rows.append(dict(row, event_types=dict(breakdown)))
        rows.sort(key=lambda row: row['slots'], reverse=True)

        logger.info(f"Found {total_slots} open slots across {len(rows)} staff over {days} days")

        return {
            'enabled': True,
            'days': days,
            'total_slots': total_slots,
            'staff': rows,
            'leaders': {
                'most_available_slots': rows[0] if rows else None,
            },
        }

    def count_available_slots(
        self,
        event_type_uri: str,
        headers: Dict[str, str],
        start: datetime,
        end: datetime
    ) -> int:
        """
        Count the raw available-time entries for one event type.

        A failing page is logged and the entries counted so far are returned.
        """
        params = {
            'event_type': event_type_uri,
            'start_time': to_utc_iso(start),
            'end_time': to_utc_iso(end),
        }
        total = 0

        try:
            for _ in self.client.paginate('/event_type_available_times', headers, params):
                total += 1
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Failed to load availability for event type {event_type_uri}: {e}")

        return total
