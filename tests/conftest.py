"""Shared fixtures for pubfs tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from pubfs.fs.cache import TTLCache
from pubfs.fs.config import FileSystemConfig
from pubfs.fs.filesystem import FileSystem
from pubfs.stores.memory import MemoryObjectStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

OWNER = "owner"
ROOT = f"pubky://{OWNER}/"
APP = f"{ROOT}pub/app/"


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    """Cache with the default TTL driven by the fake clock."""
    return TTLCache(clock=clock)


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
async def fs(store: MemoryObjectStore, cache: TTLCache) -> AsyncIterator[FileSystem]:
    """Open FileSystem over an empty in-memory store."""
    filesystem = FileSystem(store, config=FileSystemConfig(timeout=5.0), cache=cache)
    await filesystem.open()
    yield filesystem
    await filesystem.close()


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()
