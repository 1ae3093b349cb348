"""Tests for the cache module."""

from datetime import UTC, datetime

import pytest

from oshirase.core.enums import Day
from oshirase.core.schema import ScheduleEntry, User
from oshirase.db.cache import Cache, get_cache_key, next_midnight_timestamp


def fake_now(redis) -> datetime:
    return datetime.fromtimestamp(redis.now, UTC)


class TestCacheKey:
    """Tests for get_cache_key."""

    def test_without_id(self) -> None:
        assert get_cache_key("subsplease_scraper", "extract") == "subsplease_scraper:extract"

    def test_with_id(self) -> None:
        assert get_cache_key("anilist_api", "extract", 42) == "anilist_api:extract:42"


class TestNextMidnight:
    """Tests for next_midnight_timestamp."""

    def test_mid_day(self) -> None:
        now = datetime(2024, 3, 9, 15, 30, tzinfo=UTC)
        assert next_midnight_timestamp(now) == int(datetime(2024, 3, 10, tzinfo=UTC).timestamp())

    def test_exactly_midnight_is_a_full_day(self) -> None:
        now = datetime(2024, 3, 9, tzinfo=UTC)
        assert next_midnight_timestamp(now) - int(now.timestamp()) == 86400

    def test_naive_is_utc(self) -> None:
        naive = datetime(2024, 12, 31, 23, 59)
        assert next_midnight_timestamp(naive) == int(datetime(2025, 1, 1, tzinfo=UTC).timestamp())

    def test_overflow(self) -> None:
        with pytest.raises(OverflowError):
            next_midnight_timestamp(datetime(9999, 12, 31, 12, tzinfo=UTC))


class TestCache:
    """Tests for the Cache class."""

    @pytest.mark.asyncio
    async def test_round_trip(self, fake_redis) -> None:
        cache = Cache(fake_redis)
        await cache.cache_value_expire("users:1", User(id=1, name="gintoki"), 60)

        cached = await cache.get_cached("users:1", User)
        assert cached == User(id=1, name="gintoki")
        assert await fake_redis.ttl("users:1") == 60

    @pytest.mark.asyncio
    async def test_miss(self, fake_redis) -> None:
        assert await Cache(fake_redis).get_cached("absent", User) is None

    @pytest.mark.asyncio
    async def test_bypass_read(self, fake_redis) -> None:
        cache = Cache(fake_redis)
        await cache.cache_value_expire("k", User(id=1, name="a"), 60)
        assert await cache.get_cached("k", User, bypass=True) is None

    @pytest.mark.asyncio
    async def test_bypass_write(self, fake_redis) -> None:
        cache = Cache(fake_redis)
        await cache.cache_value_expire("k", User(id=1, name="a"), 60, bypass=True)
        await cache.cache_value_expire_at("k2", User(id=1, name="a"), 10**10, bypass=True)
        await cache.cache_value_expire_tomorrow("k3", User(id=1, name="a"), bypass=True)
        assert fake_redis.values == {}

    @pytest.mark.asyncio
    async def test_nested_types(self, fake_redis) -> None:
        cache = Cache(fake_redis)
        schedule = {"gintama": ScheduleEntry(title="gintama", day=Day.SATURDAY, time="00:00")}
        await cache.cache_value_expire("schedule", schedule, 60)

        cached = await cache.get_cached("schedule", dict[str, ScheduleEntry])
        assert cached == schedule

    @pytest.mark.asyncio
    async def test_undecodable_value(self, fake_redis) -> None:
        fake_redis.values["bad"] = b"{not json"
        assert await Cache(fake_redis).get_cached("bad", User) is None

    @pytest.mark.asyncio
    async def test_wrong_shape(self, fake_redis) -> None:
        fake_redis.values["wrong"] = b'{"id": "x"}'
        assert await Cache(fake_redis).get_cached("wrong", User) is None

    @pytest.mark.asyncio
    async def test_unserializable_value(self, fake_redis) -> None:
        await Cache(fake_redis).cache_value_expire("obj", object(), 60)
        assert "obj" not in fake_redis.values

    @pytest.mark.asyncio
    async def test_connection_errors_swallowed(self, fake_redis) -> None:
        fake_redis.fail = True
        cache = Cache(fake_redis)

        await cache.cache_value_expire("k", User(id=1, name="a"), 60)
        await cache.cache_value_expire_tomorrow("k", User(id=1, name="a"))
        assert await cache.get_cached("k", User) is None

    @pytest.mark.asyncio
    async def test_expire_at(self, fake_redis) -> None:
        cache = Cache(fake_redis)
        await cache.cache_value_expire_at("k", User(id=1, name="a"), int(fake_redis.now) + 5)

        assert await cache.get_cached("k", User) is not None
        fake_redis.now += 5
        assert await cache.get_cached("k", User) is None


class TestExpireTomorrow:
    """Tests for cache_value_expire_tomorrow."""

    @pytest.mark.asyncio
    async def test_ttl_within_a_day(self, fake_redis) -> None:
        cache = Cache(fake_redis)
        await cache.cache_value_expire_tomorrow("k", User(id=1, name="a"), now=fake_now(fake_redis))

        ttl = await fake_redis.ttl("k")
        assert 0 < ttl <= 86400

    @pytest.mark.asyncio
    async def test_retrievable_until_midnight(self, fake_redis) -> None:
        cache = Cache(fake_redis)
        await cache.cache_value_expire_tomorrow("k", User(id=1, name="a"), now=fake_now(fake_redis))
        midnight = next_midnight_timestamp(fake_now(fake_redis))

        fake_redis.now = midnight - 1
        assert await cache.get_cached("k", User) is not None

        fake_redis.now = midnight
        assert await cache.get_cached("k", User) is None

    @pytest.mark.asyncio
    async def test_fallback_ttl(self, fake_redis) -> None:
        cache = Cache(fake_redis, ttl_fallback=123)
        await cache.cache_value_expire_tomorrow(
            "k", User(id=1, name="a"), now=datetime(9999, 12, 31, 12, tzinfo=UTC)
        )
        assert await fake_redis.ttl("k") == 123
