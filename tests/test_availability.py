"""Unit tests for AvailabilitySummarizer."""
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
import responses

from analytics.availability import (
    AvailabilitySummarizer,
    build_availability_index,
    clamp_window_days,
)
from analytics.models import EventType, Owner
from calendly_api.client import CalendlyClient, auth_headers

API = 'https://api.calendly.com'
AVAILABLE_TIMES_URL = f"{API}/event_type_available_times"
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def catalog():
    """Three event types across two owners."""
    alex = Owner(name='Alex Rivera', uri=f"{API}/users/ALEX")
    sam = Owner(name='Sam Lee', uri=None)
    return {
        f"{API}/event_types/TOUR": EventType(f"{API}/event_types/TOUR", 'Campus Tour', 'campus-tour', 'tour', alex),
        f"{API}/event_types/ORIENT": EventType(f"{API}/event_types/ORIENT", 'Orientation', 'orientation', 'orientation', alex),
        f"{API}/event_types/MEET": EventType(f"{API}/event_types/MEET", 'Consult', 'consult', 'other', sam),
    }


def slots_callback(counts):
    """Respond with ``counts[event_type]`` available slots."""
    def callback(request):
        query = parse_qs(urlparse(request.url).query)
        count = counts.get(query['event_type'][0], 0)
        collection = [{'status': 'available', 'start_time': f"slot-{i}"} for i in range(count)]
        return 200, {}, json.dumps({'collection': collection, 'pagination': {}})
    return callback


@pytest.fixture
def summarizer():
    return AvailabilitySummarizer(CalendlyClient(timeout=5, retry_delay=0))


class TestClampWindowDays:
    """Test cases for window clamping."""

    @pytest.mark.parametrize('requested, expected', [
        (90, 60), (60, 60), (14, 14), (1, 1), (0, 1), (-3, 1), ('bad', 1),
    ])
    def test_clamp(self, requested, expected):
        """Test the window is clamped to 1..60 days."""
        assert clamp_window_days(requested) == expected


class TestAvailabilitySummarizer:
    """Test cases for summarize."""

    @responses.activate
    def test_summary_ranks_owners(self, summarizer, catalog):
        """Test slots roll up per owner and are ranked."""
        responses.add_callback(
            responses.GET, AVAILABLE_TIMES_URL,
            callback=slots_callback({
                f"{API}/event_types/TOUR": 3,
                f"{API}/event_types/ORIENT": 5,
                f"{API}/event_types/MEET": 4,
            }),
            content_type='application/json'
        )

        summary = summarizer.summarize(catalog, auth_headers('t'), 7, NOW)

        assert summary['enabled'] is True
        assert summary['days'] == 7
        assert summary['total_slots'] == 12
        assert [row['name'] for row in summary['staff']] == ['Alex Rivera', 'Sam Lee']
        assert summary['staff'][0]['slots'] == 8
        assert list(summary['staff'][0]['event_types'].items()) == [('Orientation', 5), ('Campus Tour', 3)]
        assert summary['leaders']['most_available_slots']['name'] == 'Alex Rivera'

    @responses.activate
    def test_window_clamped_to_sixty_days(self, summarizer, catalog):
        """Test a 90 day request only queries 60 days."""
        responses.add_callback(
            responses.GET, AVAILABLE_TIMES_URL,
            callback=slots_callback({}),
            content_type='application/json'
        )

        summary = summarizer.summarize(catalog, auth_headers('t'), 90, NOW)

        assert summary['days'] == 60
        query = parse_qs(urlparse(responses.calls[0].request.url).query)
        assert query['start_time'] == ['2024-03-15T12:00:00+00:00']
        expected_end = (NOW + timedelta(days=60)).isoformat()
        assert query['end_time'] == [expected_end]

    @responses.activate
    def test_zero_window_summarizes_one_day(self, summarizer, catalog):
        """Test a zero day request is raised to one day."""
        responses.add_callback(
            responses.GET, AVAILABLE_TIMES_URL,
            callback=slots_callback({}),
            content_type='application/json'
        )

        summary = summarizer.summarize(catalog, auth_headers('t'), 0, NOW)

        assert summary['days'] == 1
        assert summary['staff'] == []
        assert summary['leaders']['most_available_slots'] is None

    @responses.activate
    def test_failure_for_one_event_type_is_skipped(self, summarizer):
        """Test an event type whose availability fails contributes nothing."""
        owner = Owner(name='Alex Rivera', uri=f"{API}/users/ALEX")
        catalog = {'et': EventType('et', 'Campus Tour', 'campus-tour', 'tour', owner)}
        responses.add(responses.GET, AVAILABLE_TIMES_URL, json={'title': 'Forbidden'}, status=403)

        summary = summarizer.summarize(catalog, auth_headers('t'), 7, NOW)

        assert summary['total_slots'] == 0
        assert summary['staff'] == []

    def test_disabled(self):
        """Test the suppressed summary shape."""
        assert AvailabilitySummarizer.disabled() == {'enabled': False}


class TestAvailabilityIndex:
    """Test cases for build_availability_index."""

    def test_indexed_by_uri_then_name(self):
        """Test rows are keyed by URI, falling back to name."""
        summary = {
            'staff': [
                {'name': 'Alex Rivera', 'uri': 'uri-alex', 'slots': 8},
                {'name': 'Sam Lee', 'uri': None, 'slots': 4},
                {'name': '', 'uri': None, 'slots': 2},
            ]
        }

        index = build_availability_index(summary)

        assert index == {
            'uri-alex': {'slots': 8, 'name': 'Alex Rivera'},
            'Sam Lee': {'slots': 4, 'name': 'Sam Lee'},
        }

    def test_disabled_summary(self):
        """Test a disabled summary has no index."""
        assert build_availability_index({'enabled': False}) == {}
