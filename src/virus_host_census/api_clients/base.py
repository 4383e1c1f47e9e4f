"""HTTP client with rate limiting, retry logic and persistent caching."""

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import requests
import requests_cache
from requests.exceptions import ConnectionError, HTTPError, Timeout
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from virus_host_census.config.schema import PipelineConfig

logger = logging.getLogger(__name__)


class InvalidResponseError(HTTPError):
    """Service answered successfully but the payload could not be used."""


RETRYABLE_ERRORS = (HTTPError, Timeout, ConnectionError)


class CachedAPIClient:
    """
    HTTP client with rate limiting, retry logic, and persistent SQLite caching.

    Features:
    - Automatic retry on 429/5xx/network errors and unusable payloads
      with exponential backoff
    - Persistent SQLite cache with configurable TTL, so a restarted run
      replays answered queries without touching the remote service
    - Rate limiting of non-cached requests to respect a query ceiling
    """

    def __init__(
        self,
        cache_dir: Path,
        rate_limit: float = 10.0,
        max_retries: int = 5,
        cache_ttl: int = 86400,
        timeout: int = 30,
        backoff_min: float = 2.0,
        backoff_max: float = 60.0,
    ):
        """
        Initialize API client with caching and retry logic.

        Args:
            cache_dir: Directory for SQLite cache storage
            rate_limit: Maximum requests per second
            max_retries: Maximum attempts per request
            cache_ttl: Cache time-to-live in seconds (0 = infinite)
            timeout: Request timeout in seconds
            backoff_min: Minimum wait between retries in seconds
            backoff_max: Maximum wait between retries in seconds
        """
        self.cache_dir = Path(cache_dir)
        self.rate_limit = rate_limit
        self.max_retries = max_retries
        self.timeout = timeout
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

        self.cache_dir.mkdir(parents=True, exist_ok=True)

        cache_path = self.cache_dir / "oracle_cache"
        expire_after = cache_ttl if cache_ttl > 0 else None

        self.session = requests_cache.CachedSession(
            cache_name=str(cache_path),
            backend="sqlite",
            expire_after=expire_after,
        )

    def _should_rate_limit(self, response: requests.Response) -> bool:
        """Check if response came from cache (no rate limit needed)."""
        return not getattr(response, "from_cache", False)

    def _create_retry_decorator(self):
        """Create retry decorator with exponential backoff."""
        return retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        parse: Callable[[requests.Response], Any] | None = None,
        **kwargs,
    ) -> Any:
        """
        Make GET request with retry logic and caching.

        Args:
            url: Request URL
            params: Query parameters
            parse: Optional parser applied to the response inside the retry
                loop. A RuntimeError or ValueError from it marks the payload
                unusable: the cached copy is evicted and the request retried.
            **kwargs: Additional arguments passed to requests

        Returns:
            Response object, or the parsed payload when ``parse`` is given

        Raises:
            HTTPError: On HTTP error after retries exhausted
            InvalidResponseError: If every attempt returned an unusable payload
            Timeout: On timeout after retries exhausted
            ConnectionError: On connection error after retries exhausted
        """
        @self._create_retry_decorator()
        def _get_with_retry():
            response = self.session.get(
                url,
                params=params,
                timeout=self.timeout,
                **kwargs,
            )

            try:
                response.raise_for_status()
            except HTTPError as e:
                if response.status_code == 429:
                    logger.warning(
                        f"Rate limited by oracle (429). "
                        f"URL: {url}. Will retry with backoff."
                    )
                raise e

            if parse is None:
                return response, response
            try:
                return response, parse(response)
            except (RuntimeError, ValueError) as e:
                logger.warning(f"Unusable response from {url}: {e}. Will retry with backoff.")
                self.evict(response)
                raise InvalidResponseError(f"Unusable response from {url}: {e}") from e

        response, result = _get_with_retry()

        # Rate limit only non-cached requests
        if self._should_rate_limit(response):
            time.sleep(1 / self.rate_limit)

        return result

    def evict(self, response: requests.Response) -> None:
        """Drop one response from the cache so it is fetched again."""
        cache_key = getattr(response, "cache_key", None)
        if cache_key:
            self.session.cache.delete(cache_key)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "CachedAPIClient":
        """
        Create client from census configuration.

        Args:
            config: PipelineConfig instance

        Returns:
            Configured CachedAPIClient instance
        """
        return cls(
            cache_dir=config.cache_dir,
            rate_limit=config.oracle.rate_limit_per_second,
            max_retries=config.oracle.max_retries,
            cache_ttl=config.oracle.cache_ttl_seconds,
            timeout=config.oracle.timeout_seconds,
        )

