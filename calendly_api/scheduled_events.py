"""Scheduled event loading."""
import logging
from datetime import datetime
from typing import Dict, List, Optional

import requests

from analytics.models import ScheduledEvent
from analytics.timeutil import to_utc_iso
from calendly_api.catalog import scope_params
from calendly_api.client import CalendlyClient

logger = logging.getLogger(__name__)


class ScheduledEventLoader:
    """Pages through scheduled events for a reporting window."""

    PAGE_SIZE = 100

    def __init__(self, client: CalendlyClient):
        self.client = client

    def load(
        self,
        headers: Dict[str, str],
        organization_uri: Optional[str],
        user_uri: Optional[str],
        start: datetime,
        end: datetime
    ) -> List[ScheduledEvent]:
        """
        Fetch scheduled events starting within [start, end].

        A failing page stops pagination; events from earlier pages are kept.

        Returns:
            List of ScheduledEvent objects in page order
        """
        events = []
        params = {
            'count': self.PAGE_SIZE,
            'sort': 'start_time:asc',
            'min_start_time': to_utc_iso(start),
            'max_start_time': to_utc_iso(end),
        }
        params.update(scope_params(organization_uri, user_uri))

        try:
            for payload in self.client.paginate('/scheduled_events', headers, params):
                if isinstance(payload, dict):
                    events.append(ScheduledEvent.from_api(payload))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to load Calendly scheduled events: {e}")

        logger.info(
            f"Loaded {len(events)} scheduled events between "
            f"{params['min_start_time']} and {params['max_start_time']}"
        )
        return events
