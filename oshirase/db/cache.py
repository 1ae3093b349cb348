"""
Cache Module
============

Best-effort JSON cache on top of Redis.

Callers never see cache errors: a miss, a bypass, a decode failure and a
connection failure all look the same (None on read, no-op on write), so the
caller always falls back to recomputing the value.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, time, timedelta
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json
from redis.asyncio import Redis
from redis.exceptions import RedisError

DEFAULT_TTL_FALLBACK = 86400

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_cache_key(namespace: str, operation: str, ident: Any | None = None) -> str:
    """
    Build a namespaced cache key.

    Examples:
        get_cache_key("subsplease_scraper", "extract") -> "subsplease_scraper:extract"
        get_cache_key("anilist_api", "extract", 42) -> "anilist_api:extract:42"
    """
    key = f"{namespace}:{operation}"
    if ident is not None:
        key = f"{key}:{ident}"
    return key


def next_midnight_timestamp(now: datetime | None = None) -> int:
    """
    Unix timestamp of the next UTC midnight after `now`.

    Raises:
        OverflowError, ValueError: If the date arithmetic fails
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    tomorrow = (now.astimezone(UTC) + timedelta(days=1)).date()
    midnight = datetime.combine(tomorrow, time.min, tzinfo=UTC)
    return int(midnight.timestamp())


class Cache:
    """
    Redis-backed cache with TTL and absolute-expiry writes.

    Values are serialized to JSON with pydantic, so models, lists and dicts
    of models can be cached and read back into the same types.
    """

    def __init__(self, redis: Redis, ttl_fallback: int = DEFAULT_TTL_FALLBACK) -> None:
        """
        Initialize the cache.

        Args:
            redis: Async Redis client (shared, connection-pooled)
            ttl_fallback: TTL used when the next-midnight expiry cannot be computed
        """
        self.redis = redis
        self.ttl_fallback = ttl_fallback

    async def get_cached(self, key: str, model: type[T] | Any, bypass: bool = False) -> T | None:
        """
        Read a cached value.

        Args:
            key: Cache key
            model: Type to decode the value into
            bypass: If True, always return None

        Returns:
            The decoded value, or None on bypass, miss or failure
        """
        if bypass:
            return None

        try:
            raw = await self.redis.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Could not read cache key {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            value = TypeAdapter(model).validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Could not decode cached value for {key}: {e}")
            return None

        logger.info(f"Got cached value for cache key: {key}.")
        return value

    def _serialize(self, key: str, value: Any) -> bytes | None:
        try:
            return to_json(value)
        except PydanticSerializationError as e:
            logger.warning(f"Could not serialize value for {key}: {e}")
            return None

    async def cache_value_expire(
        self, key: str, value: Any, ttl_seconds: int, bypass: bool = False
    ) -> None:
        """
        Store a value with a relative TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Seconds until expiry
            bypass: If True, do nothing
        """
        if bypass:
            return
        payload = self._serialize(key, value)
        if payload is None:
            return

        try:
            await self.redis.set(key, payload, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            logger.warning(f"Could not cache value for {key}: {e}")

    async def cache_value_expire_at(
        self, key: str, value: Any, unix_timestamp: int, bypass: bool = False
    ) -> None:
        """
        Store a value that expires at an absolute instant.

        Args:
            key: Cache key
            value: Value to cache
            unix_timestamp: Expiry instant (seconds since epoch)
            bypass: If True, do nothing
        """
        if bypass:
            return
        payload = self._serialize(key, value)
        if payload is None:
            return

        try:
            await self.redis.set(key, payload, exat=unix_timestamp)
        except (RedisError, OSError) as e:
            logger.warning(f"Could not cache value for {key}: {e}")

    async def cache_value_expire_tomorrow(
        self, key: str, value: Any, bypass: bool = False, now: datetime | None = None
    ) -> None:
        """
        Store a value until the next UTC midnight.

        Falls back to `ttl_fallback` seconds if the expiry instant cannot be
        computed.

        Args:
            key: Cache key
            value: Value to cache
            bypass: If True, do nothing
            now: Reference time (defaults to the current time)
        """
        if bypass:
            return

        try:
            expire_at = next_midnight_timestamp(now)
        except (OverflowError, ValueError) as e:
            logger.warning(f"Could not compute expiry for {key}, using fallback TTL: {e}")
            await self.cache_value_expire(key, value, self.ttl_fallback)
            return

        await self.cache_value_expire_at(key, value, expire_at)
