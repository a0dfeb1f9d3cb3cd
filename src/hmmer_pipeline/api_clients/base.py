"""Base API client with retry logic, rate limiting and persistent caching."""

import logging
import threading
import time
from pathlib import Path
from typing import Any

import requests
import requests_cache
from requests.exceptions import HTTPError, RequestException
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hmmer_pipeline.config.schema import PipelineConfig
from hmmer_pipeline.errors import ServiceError, TransientError

logger = logging.getLogger(__name__)

# 408 Request Timeout and 429 Too Many Requests are worth retrying
RETRYABLE_CLIENT_CODES = {408, 429}


def is_retryable_status(status_code: int) -> bool:
    """Return True for HTTP status codes that indicate a transient failure."""
    return status_code >= 500 or status_code in RETRYABLE_CLIENT_CODES


class CachedAPIClient:
    """
    HTTP client with rate limiting, retry logic, and persistent SQLite caching.

    Features:
    - Retry on 408/429/5xx/network errors with exponential backoff
    - 4xx responses surface immediately as ServiceError
    - Persistent SQLite cache with configurable TTL
    - Rate limiting shared across threads using the same client
    """

    def __init__(
        self,
        cache_dir: Path,
        rate_limit: int = 5,
        max_retries: int = 5,
        cache_ttl: int = 86400,
        timeout: int = 30,
    ):
        """
        Initialize API client with caching and retry logic.

        Args:
            cache_dir: Directory for SQLite cache storage
            rate_limit: Maximum requests per second
            max_retries: Maximum retry attempts on transient failure
            cache_ttl: Cache time-to-live in seconds (0 = infinite)
            timeout: Request timeout in seconds
        """
        self.cache_dir = Path(cache_dir)
        self.rate_limit = rate_limit
        self.max_retries = max_retries
        self.timeout = timeout

        self.cache_dir.mkdir(parents=True, exist_ok=True)

        cache_path = self.cache_dir / "api_cache"
        expire_after = cache_ttl if cache_ttl > 0 else None

        self.session = requests_cache.CachedSession(
            cache_name=str(cache_path),
            backend="sqlite",
            expire_after=expire_after,
        )

        self._rate_lock = threading.Lock()

    def _should_rate_limit(self, response: requests.Response) -> bool:
        """Check if response came from cache (no rate limit needed)."""
        return not getattr(response, "from_cache", False)

    def _throttle(self) -> None:
        """Sleep for one rate-limit interval, serialized across threads."""
        with self._rate_lock:
            time.sleep(1 / self.rate_limit)

    def _create_retry_decorator(self):
        """Create retry decorator with exponential backoff for transient errors."""
        return retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=60),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        )

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        **kwargs,
    ) -> requests.Response:
        """
        Make GET request with retry logic and caching.

        Args:
            url: Request URL
            params: Query parameters
            **kwargs: Additional arguments passed to requests

        Returns:
            Response object

        Raises:
            ServiceError: On a non-retryable HTTP error (4xx)
            TransientError: On 5xx, 408/429 or any network-level failure
                after retries are exhausted
        """
        @self._create_retry_decorator()
        def _get_with_retry():
            try:
                response = self.session.get(
                    url,
                    params=params,
                    timeout=self.timeout,
                    **kwargs,
                )
            except RequestException as e:
                # Timeouts, resets and bodies broken mid-transfer
                raise TransientError(f"Network error for {url}: {e}") from e

            try:
                response.raise_for_status()
            except HTTPError as e:
                status = response.status_code
                if status == 429:
                    logger.warning(
                        f"Rate limited by API (429). "
                        f"URL: {url}. Will retry with backoff."
                    )
                if is_retryable_status(status):
                    raise TransientError(f"HTTP {status} for {url}") from e
                raise ServiceError(f"HTTP {status} for {url}", status_code=status) from e

            return response

        response = _get_with_retry()

        # Rate limit only non-cached requests
        if self._should_rate_limit(response):
            self._throttle()

        return response

    def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        **kwargs,
    ) -> dict[str, Any]:
        """Make GET request and return the parsed JSON body."""
        response = self.get(url, params=params, **kwargs)
        return response.json()

    def get_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        **kwargs,
    ) -> str:
        """Make GET request and return the response body as text."""
        response = self.get(url, params=params, **kwargs)
        return response.text

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "CachedAPIClient":
        """
        Create client from pipeline configuration.

        Args:
            config: PipelineConfig instance

        Returns:
            Configured CachedAPIClient instance
        """
        return cls(
            cache_dir=config.cache_dir,
            rate_limit=config.api.rate_limit_per_second,
            max_retries=config.api.max_retries,
            cache_ttl=config.api.cache_ttl_seconds,
            timeout=config.api.timeout_seconds,
        )

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()
