"""
Source Base Module
==================

Defines the abstract base class for data sources.
Sources are responsible for:
1. Fetching records from one upstream (API, page, feed or local store)
2. Parsing them into typed records the transform stage understands
3. Caching their own expensive calls
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import httpx

from oshirase.ingestion.http import HttpClient, TokenBucket

if TYPE_CHECKING:
    from oshirase.db.cache import Cache
    from oshirase.db.store import DocumentStore
    from oshirase.ingestion.config import AggregatorConfig

T = TypeVar("T")


@dataclass
class ExtractOptions:
    """Per-run options passed to every source."""

    skip_cache: bool = False
    user_id: int | None = None
    store: DocumentStore | None = None


class BaseSource(ABC, Generic[T]):
    """
    Abstract base class for sources.

    Subclasses must implement:
    - extract: Produce this source's records
    """

    # Source identification (override in subclasses)
    SOURCE_NAME: str = "base"

    def __init__(
        self,
        config: AggregatorConfig,
        cache: Cache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the source.

        Args:
            config: Aggregator configuration
            cache: Optional cache for expensive calls
            transport: Optional HTTP transport (tests use httpx.MockTransport)
        """
        self.config = config
        self.cache = cache
        self.transport = transport

    def create_client(
        self,
        rate_limiter: TokenBucket | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> HttpClient:
        """Create an HTTP client configured for this source."""
        http = self.config.http
        return HttpClient(
            source=self.SOURCE_NAME,
            user_agent=http.user_agent,
            timeout=http.request_timeout,
            max_retries=http.max_retries,
            rate_limiter=rate_limiter,
            headers=headers,
            transport=self.transport,
            **kwargs,
        )

    @abstractmethod
    async def extract(self, options: ExtractOptions | None = None) -> T:
        """
        Produce this source's records.

        Args:
            options: Per-run options

        Returns:
            Source-specific record collection

        Raises:
            SourceError: If the upstream cannot be read or parsed
        """
        pass
