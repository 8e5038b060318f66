"""
HTTP plumbing for fixture sources.

BaseApiClient wraps one httpx.AsyncClient with a request spacer and a
bounded retry loop. Sources subclass it and call ``_get``; everything
that goes wrong on the wire surfaces as ExternalAPIError.

Retry policy:
- 429: wait for Retry-After (capped at 30s), then retry
- 5xx and network errors: exponential backoff, then retry
- other 4xx and undecodable bodies: fail immediately
"""

import asyncio
import logging
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60
MAX_RATE_LIMIT_WAIT = 30


class ExternalAPIError(Exception):
    """A provider request failed (non-2xx, network failure or bad body)."""

    def __init__(
        self,
        message: str,
        code: str = "EXTERNAL_API_ERROR",
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class RateLimitError(ExternalAPIError):
    """The provider answered 429 on the last permitted attempt."""

    def __init__(self, message: str, retry_after: int = DEFAULT_RETRY_AFTER):
        super().__init__(message, code="RATE_LIMITED", status_code=429)
        self.retry_after = retry_after


def parse_retry_after(value: str | None) -> int:
    """Seconds from a Retry-After header; HTTP-date or junk values fall back to 60."""
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0, int(value.strip()))
    except ValueError:
        return DEFAULT_RETRY_AFTER


class RateLimiter:
    """Spaces requests evenly to stay under a per-minute budget."""

    def __init__(self, requests_per_minute: int = 120):
        self.delay = 60.0 / requests_per_minute
        self._last_request = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            wait = self.delay - (time.monotonic() - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()


class BaseApiClient:
    """
    Async JSON GET client with request spacing and retries.

    ``max_retries`` is the total number of attempts per request, so the
    default of 1 means a single try. ``transport`` is handed to httpx so
    tests can serve responses from an ``httpx.MockTransport``.
    """

    BASE_URL: str = ""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        requests_per_minute: int = 120,
        timeout: float = 30.0,
        max_retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._default_headers = headers or {}
        self._rate_limiter = RateLimiter(requests_per_minute)
        self._timeout = timeout
        self._max_attempts = max(1, max_retries)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._default_headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET ``path`` and decode the JSON body.

        When ``params`` is empty the path is sent untouched, so a path
        that already carries a query string keeps it.

        Raises:
            RateLimitError: 429 on the last attempt
            ExternalAPIError: any other failure once attempts run out
        """
        last_error: ExternalAPIError | None = None

        for attempt in range(1, self._max_attempts + 1):
            final = attempt == self._max_attempts
            await self._rate_limiter.acquire()

            try:
                response = await self.client.get(path, params=params or None)
            except httpx.RequestError as e:
                last_error = ExternalAPIError(f"Request failed for {path}: {e}")
                if not final:
                    await self._backoff(attempt, f"Request error for {path}: {e}")
                continue

            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("retry-after"))
                last_error = RateLimitError(
                    f"API rate limit exceeded. Try again in {retry_after} seconds.",
                    retry_after=retry_after,
                )
                if final:
                    raise last_error
                wait = min(retry_after, MAX_RATE_LIMIT_WAIT)
                logger.warning(f"Rate limited on {path}, waiting {wait}s (attempt {attempt})")
                await asyncio.sleep(wait)
                continue

            if response.is_error:
                status = response.status_code
                last_error = ExternalAPIError(
                    f"HTTP {status} for {path}: {response.text[:200]}",
                    status_code=status,
                )
                if status < 500:
                    raise last_error
                if not final:
                    await self._backoff(attempt, f"HTTP {status} for {path}")
                continue

            try:
                return response.json()
            except ValueError as e:
                raise ExternalAPIError(
                    f"Invalid JSON from {path}: {e}", status_code=response.status_code
                ) from e

        raise last_error or ExternalAPIError(f"Request failed for {path}")

    @staticmethod
    async def _backoff(attempt: int, reason: str) -> None:
        wait = 2 ** (attempt - 1)
        logger.warning(f"{reason}; retrying in {wait}s")
        await asyncio.sleep(wait)
