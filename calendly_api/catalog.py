"""Event type catalog loading."""
import logging
from typing import Any, Dict, Mapping, Optional

import requests

from analytics.classifier import KeywordMap, categorize_by_keywords
from analytics.models import EventType, Owner
from calendly_api.client import CalendlyClient

logger = logging.getLogger(__name__)


def scope_params(organization_uri: Optional[str], user_uri: Optional[str]) -> Dict[str, str]:
    """Scope a listing to the organization when known, else to the user."""
    if organization_uri:
        return {'organization': organization_uri}
    if user_uri:
        return {'user': user_uri}
    return {}


def extract_owner(event_type: Mapping[str, Any]) -> Owner:
    """
    Resolve the owner of an event type payload.

    Fallback order: ``profile.name`` (URI from ``profile.owner`` then
    ``profile.user``), ``owner.name``/``owner.uri``, then the event type's
    own name with no URI.
    """
    profile = event_type.get('profile')
    if isinstance(profile, Mapping) and profile.get('name'):
        return Owner(
            name=profile['name'],
            uri=profile.get('owner') or profile.get('user') or None
        )

    owner = event_type.get('owner') or {}
    if isinstance(owner, Mapping) and owner.get('name'):
        return Owner(name=owner['name'], uri=owner.get('uri') or None)

    return Owner(name=event_type.get('name') or 'Unassigned', uri=None)


class EventTypeCatalogLoader:
    """Loads active event types and assigns keyword categories."""

    PAGE_SIZE = 100

    def __init__(self, client: CalendlyClient):
        self.client = client

    def load(
        self,
        headers: Dict[str, str],
        organization_uri: Optional[str],
        user_uri: Optional[str],
        keyword_map: KeywordMap
    ) -> Dict[str, EventType]:
        """
        Fetch active event types for the organization or user.

        Never raises: on a network or decoding failure the error is logged
        and whatever was loaded so far is returned.

        Args:
            headers: Authenticated request headers
            organization_uri: Organization scope, preferred when present
            user_uri: User scope used when no organization is known
            keyword_map: Tour and orientation keywords

        Returns:
            Dictionary mapping event type URI to EventType
        """
        catalog = {}
        params = {
            'active': 'true',
            'count': self.PAGE_SIZE,
            'sort': 'name:asc',
        }
        params.update(scope_params(organization_uri, user_uri))

        try:
            for payload in self.client.paginate('/event_types', headers, params):
                if not isinstance(payload, Mapping):
                    continue
                event_type = self._parse_event_type(payload, keyword_map)
                if event_type:
                    catalog[event_type.uri] = event_type
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to load Calendly event types: {e}")

        logger.info(f"Loaded {len(catalog)} event types")
        return catalog

    def _parse_event_type(self, payload: Mapping[str, Any], keyword_map: KeywordMap) -> Optional[EventType]:
        uri = payload.get('uri')
        if not uri:
            return None

        name = payload.get('name') or 'Event Type'
        slug = payload.get('slug') or name

        return EventType(
            uri=uri,
            name=name,
            slug=slug,
            category=categorize_by_keywords(name, slug, keyword_map),
            owner=extract_owner(payload)
        )
