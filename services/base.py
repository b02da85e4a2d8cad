"""Shared HTTP plumbing for the Sonarr and Jellyfin services.

Every request goes through ``BaseService._request``, which applies the
service's ``RetryPolicy``: transient failures (timeouts, connection errors,
5xx and 429 responses) are retried with exponential backoff, everything else
is raised immediately as one of the ``APIError`` subclasses below.
"""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
import urllib3

from models.config import ApiKey

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Raised when an API request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """The server rejected our credentials (401/403)."""


class TransientAPIError(APIError):
    """Timeouts, connection problems, throttling and server errors."""


class RequestRejectedError(APIError):
    """The server refused the request itself (4xx other than auth and throttling)."""


class ResponseParseError(APIError):
    """The server answered with something that isn't JSON."""


def is_transient(error: Exception) -> bool:
    return isinstance(error, TransientAPIError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: float = 0.5
    backoff_factor: float = 2.0
    max_backoff: float = 30.0
    retryable: Callable[[Exception], bool] = is_transient
    sleep: Callable[[float], None] = time.sleep

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (zero-based) failed attempt."""
        return min(self.backoff * (self.backoff_factor**attempt), self.max_backoff)

    def call(self, func: Callable[[int], Any], description: str = "request") -> Any:
        """Call ``func(attempt)`` until it succeeds or the policy gives up."""
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            try:
                return func(attempt)
            except Exception as e:
                if not self.retryable(e) or attempt == attempts - 1:
                    raise
                wait = self.delay(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt + 1}/{attempts}): {e}; "
                    f"retrying in {wait:.1f}s"
                )
                self.sleep(wait)


def classify_http_error(response: requests.Response, description: str) -> APIError:
    status = response.status_code
    message = f"{description}: HTTP {status} {response.reason or ''}".rstrip()
    if status in (401, 403):
        return AuthenticationError(f"{message} (check the API key)", status)
    if status == 429 or status >= 500:
        return TransientAPIError(message, status)
    return RequestRejectedError(message, status)


def split_basic_auth(url: str) -> tuple:
    """Strip ``user:password@`` from a URL, returning it separately."""
    parts = urlsplit(url)
    if not parts.username:
        return url.rstrip("/"), None
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    clean = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return clean.rstrip("/"), (parts.username, parts.password or "")


class BaseService:
    """Base class for the HTTP API services.

    Handles authentication headers, TLS verification and retries.
    """

    auth_header = "X-Api-Key"

    def __init__(
        self,
        url: str,
        api_key: ApiKey,
        retry_policy: Optional[RetryPolicy] = None,
        verify_ssl: bool = True,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url, basic_auth = split_basic_auth(url)
        self.api_key = api_key
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.verify = verify_ssl
        if basic_auth:
            self.session.auth = basic_auth
        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _headers(self) -> dict:
        return {self.auth_header: self.api_key.expose()}

    def _send(self, method: str, path: str, description: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            raise TransientAPIError(f"{description}: timed out ({type(e).__name__})") from e
        except requests.exceptions.ConnectionError as e:
            raise TransientAPIError(f"{description}: connection failed ({type(e).__name__})") from e
        except requests.exceptions.RequestException as e:
            raise APIError(f"{description}: {type(e).__name__}") from e

        if not response.ok:
            raise classify_http_error(response, description)
        return response

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Any = None,
        missing_ok_on_retry: bool = False,
    ) -> Any:
        """Make an API request under the retry policy and return its decoded JSON.

        Args:
            method: HTTP method
            path: Path below the service's base URL
            params: Query parameters
            json: JSON body for POST/PUT requests
            missing_ok_on_retry: Treat a 404 on a retried attempt as success; a
                retried DELETE may find that the first attempt already went through.

        Returns:
            Decoded JSON, or an empty dict for empty bodies

        Raises:
            APIError: If the request fails for good
        """
        description = f"{method} {path}"

        def attempt(number: int) -> Any:
            try:
                response = self._send(method, path, description, params=params, json=json)
            except RequestRejectedError as e:
                if missing_ok_on_retry and number > 0 and e.status_code == 404:
                    logger.info(f"{description}: already gone after retry")
                    return {}
                raise

            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise ResponseParseError(f"{description}: response is not JSON") from e

        return self.retry_policy.call(attempt, description)


_FRACTION = re.compile(r"\.(\d+)")


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from an API into an aware UTC datetime."""
    if not value:
        return None
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
