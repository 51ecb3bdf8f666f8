"""HTTP client for the Calendly v2 REST API."""
import logging
import time
from typing import Any, Dict, Iterator, Optional

import requests

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.calendly.com"
TOKEN_URL = "https://auth.calendly.com/oauth/token"  # noqa: S105 - OAuth endpoint URL
AUTHORIZE_URL = "https://auth.calendly.com/oauth/authorize"

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def auth_headers(access_token: str) -> Dict[str, str]:
    """Build request headers for a bearer token."""
    return {
        'Authorization': f"Bearer {access_token}",
        'Content-Type': 'application/json'
    }


class CalendlyClient:
    """Thin wrapper around requests with retry and pagination support."""

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        retry_delay: float = 1,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the API client.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per request before giving up (default: 3)
            retry_delay: Base delay for exponential backoff in seconds
            session: Optional requests session to reuse
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.session = session or requests.Session()

    def get(
        self,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Issue an authenticated GET request and decode the JSON body.

        Args:
            path: API path (e.g. "/users/me") or absolute URL
            headers: Request headers including Authorization
            params: Query string parameters

        Returns:
            Decoded JSON payload

        Raises:
            requests.RequestException: If the request fails after retries
            ValueError: If the body is not valid JSON
        """
        response = self._request('GET', self._url(path), headers=headers, params=params)
        return response.json()

    def post_form(self, url: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a form-encoded body and decode the JSON response.

        Raises:
            requests.RequestException: If the request fails after retries
            ValueError: If the body is not valid JSON
        """
        response = self._request('POST', url, data=data)
        return response.json()

    def paginate(
        self,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]] = None
    ) -> Iterator[Dict[str, Any]]:
        """
        Yield collection items page by page.

        Follows ``pagination.next_page_token`` until it is exhausted. Items
        are yielded in page order, so callers that stop on an error keep
        everything gathered before the failing page.
        Stops early if the provider repeats a page token.
        """
        query = dict(params or {})
        page = 1
        seen_tokens = set()

        while True:
            payload = self.get(path, headers, query)
            collection = payload.get('collection') or []
            logger.debug(f"Fetched page {page} of {path} with {len(collection)} items")

            for item in collection:
                yield item

            next_token = (payload.get('pagination') or {}).get('next_page_token')
            if not next_token:
                return
            if next_token in seen_tokens:
                logger.warning(f"Stopping pagination of {path}: page token {next_token!r} repeated")
                return
            seen_tokens.add(next_token)
            query['page_token'] = next_token
            page += 1

    def fetch_current_user(self, headers: Dict[str, str]) -> Dict[str, Any]:
        """Load the authenticated user's profile (``GET /users/me``)."""
        return self.get('/users/me', headers)

    def _url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{API_BASE_URL}{path}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Send a request with exponential backoff on transient failures.

        Connection errors, timeouts, 429 and 5xx responses are retried.
        Other HTTP errors are raised immediately.
        """
        for attempt in range(self.max_retries):
            try:
                response = self.session.request(
                    method,
                    url,
                    timeout=self.timeout,
                    **kwargs
                )
                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if not self._is_retryable(e) or attempt >= self.max_retries - 1:
                    logger.error(
                        f"{method} {url} failed after {attempt + 1} attempt(s): {e}"
                    )
                    raise

                delay = self.retry_delay * (2 ** attempt)
                logger.warning(
                    f"{method} {url} failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                    f"Retrying in {delay} seconds..."
                )
                time.sleep(delay)

    @staticmethod
    def _is_retryable(error: requests.RequestException) -> bool:
        if isinstance(error, requests.HTTPError):
            status = error.response.status_code if error.response is not None else None
            return status in RETRYABLE_STATUS_CODES
        return True
