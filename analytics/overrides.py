"""Category overrides sourced from block configuration."""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from analytics.classifier import DEFAULT_LABEL, machine_name, normalize_category
from analytics.models import CANONICAL_ALIASES, CANONICAL_CATEGORIES, CategoryOverride

logger = logging.getLogger(__name__)


def build_category_overrides(block_configs: Iterable[Mapping[str, Any]]) -> Dict[str, CategoryOverride]:
    """
    Build a lookup of event type URI to category override.

    Each block record carries a label, the event type URIs it displays and
    an optional ``stats_category``. Later blocks win when two blocks select
    the same event type.

    Args:
        block_configs: Block configuration records

    Returns:
        Dictionary mapping event type URI to CategoryOverride
    """
    overrides = {}

    for config in block_configs:
        uris = _selected_uris(config.get('selected_event_type_uris'))
        if not uris:
            continue

        label = str(config.get('label') or '').strip() or DEFAULT_LABEL
        preferred_key = str(config.get('stats_category') or '').strip()
        key = preferred_key or machine_name(label)
        canonical = _canonical_for(preferred_key, label)

        for uri in uris:
            overrides[uri] = CategoryOverride(key=key, label=label, canonical=canonical)

    return overrides


def _canonical_for(preferred_key: str, label: str) -> str:
    alias = CANONICAL_ALIASES.get(preferred_key.lower())
    if alias in CANONICAL_CATEGORIES:
        return alias
    return normalize_category(f"{preferred_key} {label}")


def _selected_uris(raw: Any) -> List[str]:
    """Accept either a list of URIs or a {uri: checked} mapping."""
    if not raw:
        return []

    if isinstance(raw, Mapping):
        uris = []
        for key, value in raw.items():
            if isinstance(value, str) and value:
                uris.append(value)
            elif isinstance(key, str) and key and value:
                uris.append(key)
        return uris

    if isinstance(raw, (list, tuple, set)):
        return [value for value in raw if isinstance(value, str) and value]

    return []


class OverrideCache:
    """
    Per-call cache of category overrides.

    A fresh instance is created for every collection run, so the override
    source is read at most once per run and never shared across runs.
    """

    def __init__(self, source):
        """
        Args:
            source: Object with a ``list_block_configs()`` method, or None
        """
        self.source = source
        self._overrides: Optional[Dict[str, CategoryOverride]] = None

    def get(self) -> Dict[str, CategoryOverride]:
        if self._overrides is not None:
            return self._overrides

        overrides = {}
        if self.source is not None:
            try:
                overrides = build_category_overrides(self.source.list_block_configs())
            except Exception as e:
                logger.warning(f"Unable to read Calendly block stats mappings: {e}")
                overrides = {}

        logger.info(f"Loaded {len(overrides)} category overrides")
        self._overrides = overrides
        return overrides
