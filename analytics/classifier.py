"""Event category classification."""
import hashlib
import re
from typing import Dict, Iterable, List, Mapping, Optional

from analytics.models import CategoryOverride, Classification, EventType

KeywordMap = Dict[str, List[str]]

DEFAULT_LABEL = 'Other meetings'

_NON_ALNUM = re.compile(r'[^a-z0-9]+', re.IGNORECASE)


def build_keyword_list(keywords: Optional[str]) -> List[str]:
    """
    Split a comma separated keyword string.

    Args:
        keywords: Raw setting value (e.g. "Tour, campus tour")

    Returns:
        Lower-cased, trimmed, de-duplicated keywords in their original order
    """
    values = []
    for value in str(keywords or '').split(','):
        value = value.strip().lower()
        if value and value not in values:
            values.append(value)
    return values


def build_keyword_map(tour_keywords: Optional[str], orientation_keywords: Optional[str]) -> KeywordMap:
    return {
        'tour': build_keyword_list(tour_keywords),
        'orientation': build_keyword_list(orientation_keywords)
    }


def categorize_by_keywords(name: str, slug: str, keyword_map: Mapping[str, Iterable[str]]) -> str:
    """
    Apply keyword rules to an event type name and slug.

    Tour keywords are checked before orientation keywords, so a name matching
    both resolves to ``tour``.
    """
    haystack = f"{name} {slug}".lower()
    for canonical in ('tour', 'orientation'):
        for needle in keyword_map.get(canonical) or []:
            if needle and needle in haystack:
                return canonical
    return 'other'


def machine_name(value: str) -> str:
    """
    Create a machine-safe key from free-form text.

    Falls back to a short hash-derived key when nothing alphanumeric remains.
    """
    key = _NON_ALNUM.sub('_', value).lower().strip('_')
    if key:
        return key
    digest = hashlib.md5(value.encode('utf-8')).hexdigest()
    return f"category_{digest[:6]}"


def normalize_category(text: Optional[str]) -> str:
    """Map a free-form category label to a canonical bucket."""
    normalized = str(text or '').lower()
    if 'tour' in normalized:
        return 'tour'
    if 'orient' in normalized or 'safety' in normalized or 'walk' in normalized:
        return 'orientation'
    return 'other'


class CategoryClassifier:
    """Resolves the category of an event from overrides and keywords."""

    def classify(
        self,
        event_type_uri: str,
        event_type: Optional[EventType],
        overrides: Mapping[str, CategoryOverride],
        keyword_map: Mapping[str, Iterable[str]]
    ) -> Classification:
        """
        Classify an event by its event type.

        Precedence: override by event type URI, then keyword match on
        name + slug, then a name-derived key in the ``other`` bucket.

        Args:
            event_type_uri: URI of the event's event type
            event_type: Catalog entry, or None if the type is not in the catalog
            overrides: Category overrides keyed by event type URI
            keyword_map: Tour and orientation keywords

        Returns:
            Classification with key, display label and canonical bucket
        """
        override = overrides.get(event_type_uri)
        if override is not None:
            canonical = override.canonical or normalize_category(
                f"{override.label} {override.key}"
            )
            return Classification(override.key, override.label, canonical)

        label = event_type.name if event_type else DEFAULT_LABEL
        slug = event_type.slug if event_type else ''

        keyword_category = categorize_by_keywords(label, slug, keyword_map)
        if keyword_category == 'tour':
            return Classification('tours', label, 'tour')
        if keyword_category == 'orientation':
            return Classification('orientations', label, 'orientation')

        return Classification(machine_name(label), label, 'other')
