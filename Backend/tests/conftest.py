import asyncio
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import create_async_engine

from taboo.database import Database
from taboo.dependencies import get_llm_provider, get_repository
from taboo.main import app
from taboo.models import Base
from taboo.services.device_identity import DeviceIdentityResolver
from taboo.services.word_set_repository import FallbackPolicy, WordSetRepository
from taboo.storage.defaults import DefaultsTier
from taboo.storage.local_cache import LocalCacheTier
from taboo.storage.remote import RemoteTier

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_DEVICE_ID = "fp_test-device"


class FakeRedis:
    """In-memory Redis mock for testing. Set `down` to simulate an outage.

    Every command yields to the event loop like a real socket round trip, so
    concurrent callers interleave. WATCH/MULTI/EXEC is honoured through
    `pipeline()`.
    """

    def __init__(self):
        self._store: dict[str, str] = {}
        self._versions: dict[str, int] = {}
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("Connection refused")

    async def _round_trip(self) -> None:
        await asyncio.sleep(0)
        self._check()

    def _bump(self, key: str) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1

    async def get(self, key: str) -> str | None:
        await self._round_trip()
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        await self._round_trip()
        self._store[key] = str(value)
        self._bump(key)

    async def delete(self, key: str) -> None:
        await self._round_trip()
        self._store.pop(key, None)
        self._bump(key)

    async def ping(self) -> bool:
        await self._round_trip()
        return True

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    async def aclose(self) -> None:
        pass


class FakePipeline:
    """Optimistic transaction on FakeRedis: commands after multi() are queued
    and execute() raises WatchError if a watched key changed."""

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._watched: dict[str, int] = {}
        self._queued: list[tuple[str, str]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._watched.clear()
        self._queued.clear()

    async def watch(self, *keys: str) -> None:
        await self._redis._round_trip()
        for key in keys:
            self._watched[key] = self._redis._versions.get(key, 0)

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    def multi(self) -> None:
        self._queued.clear()

    def set(self, key: str, value: str) -> "FakePipeline":
        self._queued.append((key, str(value)))
        return self

    async def execute(self) -> list:
        await self._redis._round_trip()
        for key, version in self._watched.items():
            if self._redis._versions.get(key, 0) != version:
                raise WatchError("Watched variable changed.")
        for key, value in self._queued:
            self._redis._store[key] = value
            self._redis._bump(key)
        results = [True] * len(self._queued)
        self._queued.clear()
        self._watched.clear()
        return results


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def database(db_engine) -> Database:
    return Database(db_engine)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def remote_tier(database) -> RemoteTier:
    return RemoteTier(database)


@pytest.fixture
async def unreachable_remote(tmp_path) -> AsyncGenerator[RemoteTier, None]:
    """A remote tier whose database file can never be opened."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'taboo.db'}")
    yield RemoteTier(Database(engine))
    await engine.dispose()


@pytest.fixture
def local_tier(fake_redis) -> LocalCacheTier:
    return LocalCacheTier(fake_redis, key="test:wordsets")


@pytest.fixture
def resolver(fake_redis) -> DeviceIdentityResolver:
    return DeviceIdentityResolver(
        fake_redis, key="test:device_id", fingerprint=lambda: TEST_DEVICE_ID
    )


@pytest.fixture
def repository(remote_tier, local_tier, resolver) -> WordSetRepository:
    return WordSetRepository(
        [remote_tier, local_tier, DefaultsTier()],
        FallbackPolicy(offline_writes=True, offline_deletes=False),
        resolver,
    )


@pytest.fixture
def offline_repository(unreachable_remote, local_tier, resolver) -> WordSetRepository:
    """Same cache as `repository`, but the remote store is down."""
    return WordSetRepository(
        [unreachable_remote, local_tier, DefaultsTier()],
        FallbackPolicy(offline_writes=True, offline_deletes=False),
        resolver,
    )


@pytest.fixture
async def client(repository) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_llm_provider] = lambda: None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
