"""OAuth access token management for the Calendly API."""
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

import requests

from calendly_api.client import AUTHORIZE_URL, TOKEN_URL, CalendlyClient

logger = logging.getLogger(__name__)

ENVIRONMENTS = ('production', 'testing', 'development')

# Refresh when the token expires within this many seconds
REFRESH_MARGIN_SECONDS = 300


def resolve_client_credentials(settings: Mapping[str, Any], current_host: Optional[str]) -> Dict[str, str]:
    """
    Pick the OAuth client credentials for the current host.

    Resolution order: the environment whose base URL matches the host
    (case-insensitive, trailing slash ignored), then the first environment
    with complete credentials, then legacy top-level credentials.

    Args:
        settings: Settings mapping
        current_host: Scheme and host of the running site, e.g. "https://example.org"

    Returns:
        Dict with client_id and client_secret, or an empty dict
    """
    host = (current_host or '').rstrip('/').lower()

    if host:
        for env in ENVIRONMENTS:
            base_url = str(settings.get(f"{env}_base_url") or '').rstrip('/').lower()
            if base_url and base_url == host:
                credentials = _credentials(
                    settings.get(f"{env}_client_id"),
                    settings.get(f"{env}_client_secret")
                )
                if credentials:
                    return credentials

    for env in ENVIRONMENTS:
        credentials = _credentials(
            settings.get(f"{env}_client_id"),
            settings.get(f"{env}_client_secret")
        )
        if credentials:
            return credentials

    return _credentials(settings.get('client_id'), settings.get('client_secret'))


def _credentials(client_id: Any, client_secret: Any) -> Dict[str, str]:
    if client_id and client_secret:
        return {'client_id': str(client_id), 'client_secret': str(client_secret)}
    return {}


class TokenProvider:
    """Supplies a valid bearer token, refreshing it when needed."""

    DEFAULT_REFRESH_TTL = 3600
    DEFAULT_AUTHORIZATION_TTL = 7200

    def __init__(
        self,
        settings_store,
        client: CalendlyClient,
        current_host: Optional[str] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the token provider.

        Args:
            settings_store: Store with ``load()`` and ``save_tokens()``
            client: API client used for the token endpoint
            current_host: Scheme and host used to pick client credentials
            clock: Returns the current epoch time in seconds
        """
        self.settings_store = settings_store
        self.client = client
        self.current_host = current_host
        self.clock = clock

    def get_valid_access_token(self) -> Optional[str]:
        """
        Return the stored access token, refreshing it first if it is
        missing an expiry or expires within five minutes.

        A failed refresh is logged and the stored token is returned, so a
        stale token surfaces later as a 401 from the API.

        Returns:
            Access token, or None if nothing is stored
        """
        settings = self.settings_store.load()
        access_token = settings.get('personal_access_token') or None
        refresh_token = settings.get('refresh_token')
        expires_at = settings.get('token_expires_at')

        if not refresh_token or not self._needs_refresh(expires_at):
            return access_token

        logger.info("Calendly access token is expired or expiring soon. Attempting to refresh.")
        credentials = resolve_client_credentials(settings, self.current_host)
        if not credentials:
            logger.warning("Cannot refresh Calendly token: missing client credentials for current host.")
            return access_token

        try:
            data = self.client.post_form(TOKEN_URL, {
                'grant_type': 'refresh_token',
                'refresh_token': refresh_token,
                'client_id': credentials['client_id'],
                'client_secret': credentials['client_secret'],
            })
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to refresh Calendly access token: {e}")
            return access_token

        if not data.get('access_token'):
            logger.error("Calendly token refresh response did not include an access token")
            return access_token

        self._store_tokens(data, refresh_token, self.DEFAULT_REFRESH_TTL)
        logger.info("Successfully refreshed Calendly access token.")
        return data['access_token']

    def exchange_authorization_code(self, code: str, redirect_uri: str) -> Optional[str]:
        """
        Exchange an OAuth authorization code for tokens and store them.

        Returns:
            The new access token, or None if the exchange failed
        """
        settings = self.settings_store.load()
        credentials = resolve_client_credentials(settings, self.current_host)
        if not credentials:
            logger.error(f"Could not find Client ID or Secret for the current host: {self.current_host}")
            return None

        try:
            data = self.client.post_form(TOKEN_URL, {
                'grant_type': 'authorization_code',
                'code': code,
                'redirect_uri': redirect_uri,
                'client_id': credentials['client_id'],
                'client_secret': credentials['client_secret'],
            })
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error in OAuth callback: {e}")
            return None

        if not data.get('access_token'):
            logger.error("Failed to obtain access token from Calendly.")
            return None

        self._store_tokens(data, None, self.DEFAULT_AUTHORIZATION_TTL)
        logger.info("Successfully connected to Calendly API.")
        return data['access_token']

    def build_authorization_url(self, redirect_uri: str, state: Optional[str] = None) -> Optional[str]:
        """Build the OAuth authorize URL for the current host's client."""
        credentials = resolve_client_credentials(self.settings_store.load(), self.current_host)
        if not credentials:
            return None

        params = {
            'client_id': credentials['client_id'],
            'response_type': 'code',
            'redirect_uri': redirect_uri,
        }
        if state:
            params['state'] = state
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def _needs_refresh(self, expires_at: Any) -> bool:
        if not expires_at:
            return True
        try:
            return self.clock() > float(expires_at) - REFRESH_MARGIN_SECONDS
        except (TypeError, ValueError):
            return True

    def _store_tokens(self, data: Mapping[str, Any], previous_refresh: Optional[str], default_ttl: int) -> None:
        try:
            expires_in = int(data.get('expires_in') or default_ttl)
        except (TypeError, ValueError):
            expires_in = default_ttl

        self.settings_store.save_tokens(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token') or previous_refresh,
            expires_at=int(self.clock()) + expires_in
        )
