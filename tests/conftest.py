"""Shared fixtures for the Oshirase test suite."""

import math
import tempfile
from pathlib import Path

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine

from oshirase.db.store import DocumentStore


class FakeRedis:
    """
    In-memory stand-in for the redis.asyncio commands the package uses.

    `now` is the clock used for key expiry; tests move it forward to expire
    keys. Setting `fail` makes every command raise a connection error.
    """

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now
        self.fail = False
        self.closed = False
        self.values: dict[str, bytes] = {}
        self.expiry: dict[str, float] = {}
        self.lists: dict[str, list[bytes]] = {}
        self.calls: list[str] = []

    def _command(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _expire(self, key: str) -> None:
        if key in self.expiry and self.expiry[key] <= self.now:
            self.values.pop(key, None)
            self.expiry.pop(key, None)

    @staticmethod
    def _encode(value) -> bytes:
        if isinstance(value, bytes):
            return value
        return str(value).encode()

    async def get(self, key: str) -> bytes | None:
        self._command("get")
        self._expire(key)
        return self.values.get(key)

    async def set(self, key: str, value, ex: int | None = None, exat: int | None = None) -> bool:
        self._command("set")
        self.values[key] = self._encode(value)
        self.expiry.pop(key, None)
        if ex is not None:
            self.expiry[key] = self.now + ex
        if exat is not None:
            self.expiry[key] = float(exat)
        return True

    async def ttl(self, key: str) -> int:
        self._command("ttl")
        self._expire(key)
        if key not in self.values:
            return -2
        if key not in self.expiry:
            return -1
        return math.ceil(self.expiry[key] - self.now)

    async def lpush(self, key: str, *values) -> int:
        self._command("lpush")
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, self._encode(value))
        return len(items)

    async def blmove(
        self, first_list: str, second_list: str, timeout: int, src: str = "LEFT", dest: str = "RIGHT"
    ) -> bytes | None:
        self._command("blmove")
        items = self.lists.get(first_list) or []
        if not items:
            return None
        value = items.pop(0 if src == "LEFT" else -1)
        target = self.lists.setdefault(second_list, [])
        if dest == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def llen(self, key: str) -> int:
        self._command("llen")
        return len(self.lists.get(key) or [])

    async def lrange(self, key: str, start: int, end: int) -> list[bytes]:
        self._command("lrange")
        items = self.lists.get(key) or []
        return items[start:] if end == -1 else items[start : end + 1]

    async def delete(self, *keys: str) -> int:
        self._command("delete")
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            if self.lists.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Create an empty in-memory Redis."""
    return FakeRedis()


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def engine(temp_db_path):
    """Create a database engine on the temporary file."""
    engine = create_engine(
        f"sqlite:///{temp_db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> DocumentStore:
    """Create a document store with its collections in place."""
    store = DocumentStore(engine, max_concurrency=4)
    store.ensure_indexes()
    return store
