"""
HTTP Client Module
==================

Shared HTTP access for every source: one pooled httpx client, token bucket
rate limiting, and retries with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from oshirase.core.errors import SourceError

logger = logging.getLogger(__name__)

# Status codes worth retrying; every other error status fails immediately
RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class TokenBucket:
    """
    Token bucket rate limiter.

    Allows bursting up to burst_limit requests, then enforces
    the steady-state rate of requests_per_second.
    """

    def __init__(self, requests_per_second: float, burst_limit: int) -> None:
        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.tokens = float(burst_limit)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """
        Acquire a token, waiting if necessary.

        This method blocks until a token is available.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.last_update = now

            self.tokens = min(
                self.burst_limit, self.tokens + elapsed * self.requests_per_second
            )

            if self.tokens < 1.0:
                wait_time = (1.0 - self.tokens) / self.requests_per_second
                await asyncio.sleep(wait_time)
                self.tokens = 0.0
                self.last_update = time.monotonic()
            else:
                self.tokens -= 1.0


class HttpClient:
    """
    Rate-limited HTTP client with retries.

    Features:
    - One connection-pooled httpx.AsyncClient per instance
    - Optional token bucket rate limiting
    - Exponential backoff on timeouts, transport errors and 429/5xx
    - Failures surface as SourceError tagged with the source name
    """

    def __init__(
        self,
        source: str,
        user_agent: str = "Oshirase/0.1",
        timeout: float = 30.0,
        max_retries: int = 3,
        rate_limiter: TokenBucket | None = None,
        backoff_base: float = 1.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            source: Source name used in errors and logs
            user_agent: User-Agent header for every request
            timeout: Request timeout in seconds
            max_retries: Attempts per request (at least one)
            rate_limiter: Optional rate limiter shared by all requests
            backoff_base: Seconds to wait before the first retry, doubled each time
            headers: Extra default headers
            transport: Custom transport (e.g. httpx.MockTransport in tests)
        """
        self.source = source
        self.max_retries = max(1, max_retries)
        self.rate_limiter = rate_limiter
        self.backoff_base = backoff_base
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent, **(headers or {})},
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Passed to httpx.AsyncClient.request

        Returns:
            Successful response

        Raises:
            SourceError: If every attempt fails or the server rejects the request
        """
        last_error: str | None = None
        for attempt in range(self.max_retries):
            if self.rate_limiter:
                await self.rate_limiter.acquire()

            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code not in RETRY_STATUS_CODES:
                    response.raise_for_status()
                    return response
                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    f"{self.source}: {method} {url} returned {response.status_code} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            except httpx.HTTPStatusError as e:
                raise SourceError(
                    self.source, f"{method} {url} returned {e.response.status_code}"
                ) from e
            except httpx.TimeoutException:
                last_error = "timeout"
                logger.warning(
                    f"{self.source}: timeout on {method} {url} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(
                    f"{self.source}: HTTP error on {method} {url}: {e} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )

            # Wait before retry with exponential backoff
            if attempt < self.max_retries - 1:
                await asyncio.sleep(self.backoff_base * 2**attempt)

        raise SourceError(
            self.source,
            f"{method} {url} failed after {self.max_retries} attempts: {last_error}",
        )

    async def get_text(self, url: str, **kwargs: Any) -> str:
        """GET a URL and return the decoded body."""
        response = await self.request("GET", url, **kwargs)
        return response.text

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET a URL and decode the JSON body."""
        response = await self.request("GET", url, **kwargs)
        return self._decode_json(response, url)

    async def post_json(self, url: str, payload: Any, **kwargs: Any) -> Any:
        """POST a JSON payload and decode the JSON body."""
        response = await self.request("POST", url, json=payload, **kwargs)
        return self._decode_json(response, url)

    def _decode_json(self, response: httpx.Response, url: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise SourceError(self.source, f"Invalid JSON from {url}: {e}") from e
