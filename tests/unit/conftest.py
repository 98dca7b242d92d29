"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

import aiosqlite
import pytest

from pagestate.store import MemoryStateStore, SqliteStateStore


@pytest.fixture()
async def sqlite_store():
    """In-memory SQLite store for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        store = SqliteStateStore(db)
        await store.init_db()
        yield store


@pytest.fixture()
def memory_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture(params=["memory", "sqlite"])
async def store(request: pytest.FixtureRequest):
    """Each backend in turn, for behaviour both must share."""
    if request.param == "memory":
        yield MemoryStateStore()
        return
    async with aiosqlite.connect(":memory:") as db:
        sqlite = SqliteStateStore(db)
        await sqlite.init_db()
        yield sqlite
