"""
Base HTTP client for registry APIs.

Every attempt first claims a slot from the shared sliding-window rate
limiter, so retries count against the same budget as first attempts.
Responses are parsed as JSON; anything else becomes a FetchError subclass
(see app.core.api_errors).
"""
import asyncio
import logging
import random
from abc import ABC
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from app.core.api_errors import (
    FetchError,
    RetryableError,
    RateLimitError,
    FatalError,
    classify_http_error,
)
from app.core.rate_limiter import SlidingWindowRateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)


class BaseAPIClient(ABC):
    """
    Shared plumbing for registry clients: lazily created httpx client,
    rate limiting, error classification and optional retries.

    Subclasses set SOURCE_NAME and BASE_URL, add authentication in
    _build_headers() and call get() from their endpoint methods.
    """

    SOURCE_NAME: str = "unknown"
    BASE_URL: str = ""

    DEFAULT_TIMEOUT: float = 30.0
    DEFAULT_CONNECT_TIMEOUT: float = 10.0
    MAX_BACKOFF: float = 60.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        max_retries: int = 1,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limit_timeout: float = 30.0,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Args:
            api_key: Registry API key
            rate_limiter: Shared limiter (defaults to the process-wide instance)
            max_retries: Attempts per request (1 = no retries)
            timeout: Request timeout in seconds
            rate_limit_timeout: Maximum seconds to wait for a rate limit slot
            base_url: Override for BASE_URL
            http_client: Preconfigured httpx client (tests inject a mock transport)
            sleep: Coroutine used to wait between attempts
        """
        self.api_key = api_key
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self.rate_limit_timeout = rate_limit_timeout
        if base_url:
            self.BASE_URL = base_url
        self._sleep = sleep or asyncio.sleep

        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

        logger.debug(
            f"[{self.SOURCE_NAME}] client ready: base_url={self.BASE_URL}, "
            f"api_key_present={bool(api_key)}, max_retries={self.max_retries}"
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.DEFAULT_CONNECT_TIMEOUT),
                follow_redirects=True,
                # Builds are sequential; a couple of connections is plenty
                limits=httpx.Limits(max_connections=4, max_keepalive_connections=2),
            )
        return self._client

    async def close(self) -> None:
        """Close the httpx client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"[{self.SOURCE_NAME}] client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_headers(self) -> Dict[str, str]:
        """Common headers; override to add authentication."""
        return {
            "Accept": "application/json",
            "User-Agent": f"DirectorNetwork/{self.SOURCE_NAME}-client",
        }

    def _build_url(self, url: str) -> str:
        """Absolute URLs pass through; paths are joined to BASE_URL."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.BASE_URL.rstrip('/')}/{url.lstrip('/')}"

    async def _send(
        self, method: str, url: str, params: Optional[Dict[str, Any]], resource_id: str
    ) -> Dict[str, Any]:
        """One rate-limited attempt. Raises a classified FetchError on failure."""
        await self.rate_limiter.acquire(timeout=self.rate_limit_timeout)

        try:
            response = await self._get_client().request(
                method, url, params=params, headers=self._build_headers()
            )
        except httpx.RequestError as e:
            raise RetryableError(
                message=f"Request failed: {e}", source=self.SOURCE_NAME, resource_id=resource_id
            )

        if response.is_error:
            error = classify_http_error(
                response.status_code, response.text, self.SOURCE_NAME, resource_id=resource_id
            )
            if isinstance(error, RateLimitError):
                retry_after = response.headers.get("Retry-After", "")
                if retry_after.isdigit():
                    error.retry_after = int(retry_after)
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise FatalError(
                message=f"Invalid JSON response: {e}",
                source=self.SOURCE_NAME,
                resource_id=resource_id,
            )

    def _retry_delay(self, error: FetchError, attempt: int) -> float:
        """Seconds to wait before the next attempt after `error`."""
        if isinstance(error, RateLimitError):
            return float(error.retry_after)
        delay = min(2.0 ** attempt, self.MAX_BACKOFF)
        # +/-25% jitter
        return max(0.1, delay * (1 + 0.25 * (2 * random.random() - 1)))

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
    ) -> Dict[str, Any]:
        """
        Make a request, retrying retryable failures up to max_retries attempts.

        Args:
            method: HTTP method
            url: Full URL or path (if path, BASE_URL is prepended)
            params: Query parameters
            resource_id: What is being fetched, for logs and errors

        Returns:
            Parsed JSON body

        Raises:
            FetchError: When the last attempt fails or the failure is not retryable
        """
        url = self._build_url(url)

        for attempt in range(self.max_retries):
            logger.debug(
                f"[{self.SOURCE_NAME}] {method} {resource_id} "
                f"(attempt {attempt + 1}/{self.max_retries})"
            )
            try:
                return await self._send(method, url, params, resource_id)
            except FetchError as error:
                if not error.retryable or attempt == self.max_retries - 1:
                    raise
                delay = self._retry_delay(error, attempt)
                logger.warning(f"[{self.SOURCE_NAME}] {error}; retrying in {delay:.1f}s")
                await self._sleep(delay)

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown"
    ) -> Dict[str, Any]:
        """GET a JSON resource."""
        return await self._request("GET", url, params=params, resource_id=resource_id)
