"""
HTTP fetcher with retry logic and error handling.

Implements the Fetcher capability (locator in, bytes out) on top of a
synchronous httpx client with tenacity exponential backoff.
"""

from typing import Any, Protocol

import httpx
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from trove_keeper.config import HTTPConfig, RetryConfig, get_settings
from trove_keeper.errors import TransportError
from trove_keeper.logger import get_logger


class Fetcher(Protocol):
    """Anything that turns a locator into bytes or raises TransportError."""

    def fetch(self, url: str) -> bytes: ...


class _RetryableStatus(Exception):
    """Internal marker for responses worth retrying (429 and 5xx)."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class HttpFetcher:
    """
    Fetches locators over HTTP.

    Provides:
    - HTTP client management (lazy creation, context manager)
    - Retry with exponential backoff for transport errors, 429 and 5xx
    - Structured logging of retries and failures

    Every failure surfaces as TransportError carrying the URL.
    """

    def __init__(
        self,
        *,
        http_config: HTTPConfig | None = None,
        retry_config: RetryConfig | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """
        Initialize the fetcher.

        Args:
            http_config: Timeout and headers (uses settings if None)
            retry_config: Custom retry configuration (uses settings if None)
            client: Pre-built client, mainly for tests
        """
        if http_config is None or retry_config is None:
            settings = get_settings()
            http_config = http_config or settings.http
            retry_config = retry_config or settings.retry
        self._http_config = http_config
        self._retry_config = retry_config
        self._logger = get_logger(self.__class__.__name__, component="fetcher")
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self._http_config.timeout_seconds),
                follow_redirects=True,
                headers={"User-Agent": self._http_config.user_agent},
            )
        return self._client

    def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _create_retry_decorator(self) -> Any:
        """Create retry decorator with current configuration."""
        return retry(
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            stop=stop_after_attempt(self._retry_config.max_attempts),
            wait=wait_exponential(
                multiplier=self._retry_config.base_delay_seconds,
                max=self._retry_config.max_delay_seconds,
                exp_base=self._retry_config.exponential_base,
            ),
            before_sleep=self._log_retry_attempt,
        )

    def _log_retry_attempt(self, retry_state: Any) -> None:
        """Log retry attempts for observability."""
        self._logger.warning(
            "Retrying request",
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    def fetch(self, url: str) -> bytes:
        """
        Fetch a URL and return the response body.

        Args:
            url: Locator to fetch

        Returns:
            bytes: Response body of a successful (2xx) response

        Raises:
            TransportError: On network errors or non-success status codes
        """
        retry_decorator = self._create_retry_decorator()

        @retry_decorator
        def _request() -> httpx.Response:
            self._logger.debug("Making request", url=url)
            response = self.client.get(url)
            if response.status_code == 429 or response.status_code >= 500:
                raise _RetryableStatus(response.status_code)
            return response

        try:
            response = _request()
        except RetryError as e:
            last = e.last_attempt.exception()
            status_code = last.status_code if isinstance(last, _RetryableStatus) else None
            self._logger.error(
                "Request failed after retries",
                url=url,
                attempts=self._retry_config.max_attempts,
                error=str(last),
            )
            raise TransportError(
                f"Request failed after {self._retry_config.max_attempts} attempts: {last}",
                locator=url,
                status_code=status_code,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}", locator=url, original_error=e) from e

        if response.status_code >= 400:
            self._logger.error("Request rejected", url=url, status_code=response.status_code)
            raise TransportError(
                f"HTTP error: {response.status_code}",
                locator=url,
                status_code=response.status_code,
            )

        return response.content
