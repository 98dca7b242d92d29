"""State store with per-key single-flight generation gates.

Two backends share the same gate logic:

- ``MemoryStateStore`` keeps immutable ``StateEntry`` objects in a dict, so a
  replace is a single reference swap.
- ``SqliteStateStore`` persists entries with ``aiosqlite``. Each entry is one
  row written by a single ``INSERT OR REPLACE``, so readers see either the old
  row or the new one. Database errors are caught inside the store: read
  failures are logged and treated as a miss, write failures are logged and
  ignored. A storage fault degrades caching but never fails a page request.

Gates live in process memory in both backends. Exactly one caller per key can
hold a gate; everyone else waits on an ``asyncio.Event`` that the owner sets
once, when ``end_generation`` runs.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol

import aiosqlite
import structlog

from pagestate.errors import GenerationTimeoutError
from pagestate.models.state import RevalidationSnapshot, StateEntry

if TYPE_CHECKING:
    from pagestate.models.state import StateKey

log = structlog.get_logger()


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one generation, shared by the owner and all its waiters."""

    entry: StateEntry | None = None
    error: BaseException | None = None


@dataclass
class _Flight:
    done: asyncio.Event = field(default_factory=asyncio.Event)
    result: GenerationResult | None = None


class StateStore(Protocol):
    async def get(self, key: StateKey) -> StateEntry | None: ...

    async def put(self, key: StateKey, entry: StateEntry) -> None: ...

    async def delete(self, key: StateKey) -> None: ...

    async def try_begin_generation(self, key: StateKey) -> bool: ...

    async def end_generation(
        self,
        key: StateKey,
        entry: StateEntry | None = None,
        *,
        error: BaseException | None = None,
        invalidate: bool = False,
    ) -> None: ...

    async def wait_for_generation(
        self, key: StateKey, timeout: float | None = None
    ) -> GenerationResult | None: ...


def _committable(entry: StateEntry) -> StateEntry:
    # Request-time state is per visitor and must never reach shared storage.
    if entry.request_state is None and not entry.generating:
        return entry
    return entry.model_copy(update={"request_state": None, "generating": False})


class BaseStateStore(ABC):
    """Single-flight gate protocol on top of a backend's get/put/delete."""

    def __init__(self) -> None:
        self._flights: dict[StateKey, _Flight] = {}

    @abstractmethod
    async def _read(self, key: StateKey) -> StateEntry | None: ...

    @abstractmethod
    async def _write(self, key: StateKey, entry: StateEntry) -> None: ...

    @abstractmethod
    async def _remove(self, key: StateKey) -> None: ...

    async def get(self, key: StateKey) -> StateEntry | None:
        """Return the last committed entry. Never waits for a generation."""
        entry = await self._read(key)
        if entry is not None and key in self._flights:
            return entry.model_copy(update={"generating": True})
        return entry

    async def put(self, key: StateKey, entry: StateEntry) -> None:
        await self._write(key, _committable(entry))

    async def delete(self, key: StateKey) -> None:
        await self._remove(key)

    async def try_begin_generation(self, key: StateKey) -> bool:
        # No await between the check and the insert: this is the test-and-set.
        if key in self._flights:
            return False
        self._flights[key] = _Flight()
        log.debug("generation_started", key=str(key))
        return True

    async def end_generation(
        self,
        key: StateKey,
        entry: StateEntry | None = None,
        *,
        error: BaseException | None = None,
        invalidate: bool = False,
    ) -> None:
        """Commit (or discard) a generation and release the gate.

        On success ``entry`` replaces the stored entry. On failure the stored
        entry is kept, unless ``invalidate`` is set, in which case it is
        removed. Waiters are released with the same result either way.
        """
        flight = self._flights.get(key)
        if flight is None:
            log.warning("generation_not_in_progress", key=str(key))

        committed = _committable(entry) if error is None and entry is not None else None
        try:
            if committed is not None:
                await self._write(key, committed)
            elif error is not None and invalidate:
                await self._remove(key)
                log.info("entry_invalidated", key=str(key))
        finally:
            self._flights.pop(key, None)
            if flight is not None:
                flight.result = GenerationResult(entry=committed, error=error)
                flight.done.set()
            log.debug("generation_finished", key=str(key), ok=error is None)

    async def wait_for_generation(
        self, key: StateKey, timeout: float | None = None
    ) -> GenerationResult | None:
        """Wait for the in-flight generation of ``key`` and return its result.

        Returns ``None`` when nothing is in flight. Timing out (or being
        cancelled) only abandons this waiter; the generation carries on.
        """
        flight = self._flights.get(key)
        if flight is None:
            return None
        try:
            await asyncio.wait_for(flight.done.wait(), timeout)
        except TimeoutError:
            assert timeout is not None
            raise GenerationTimeoutError(key.template_id, key.locale, key.path, timeout) from None
        return flight.result


class MemoryStateStore(BaseStateStore):
    """Process-local store."""

    def __init__(self) -> None:
        super().__init__()
        self._entries: dict[StateKey, StateEntry] = {}

    async def _read(self, key: StateKey) -> StateEntry | None:
        return self._entries.get(key)

    async def _write(self, key: StateKey, entry: StateEntry) -> None:
        self._entries[key] = entry

    async def _remove(self, key: StateKey) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


_CREATE_STATE_TABLE = """
CREATE TABLE IF NOT EXISTS page_state (
    template_id           TEXT NOT NULL,
    locale                TEXT NOT NULL,
    path                  TEXT NOT NULL,
    build_state           TEXT,
    generated_at          TEXT NOT NULL,
    revalidation_kind     TEXT NOT NULL DEFAULT 'none',
    revalidation_interval REAL,
    PRIMARY KEY (template_id, locale, path)
)
"""

_CREATE_TEMPLATE_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_page_state_template ON page_state(template_id)"
)


class SqliteStateStore(BaseStateStore):
    """SQLite-backed store. The connection is owned by the caller."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        super().__init__()
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_STATE_TABLE)
        await self._db.execute(_CREATE_TEMPLATE_INDEX)
        await self._db.commit()

    async def _read(self, key: StateKey) -> StateEntry | None:
        try:
            cursor = await self._db.execute(
                "SELECT build_state, generated_at, revalidation_kind, revalidation_interval "
                "FROM page_state WHERE template_id = ? AND locale = ? AND path = ?",
                (key.template_id, key.locale, key.path),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            interval = timedelta(seconds=row[3]) if row[3] is not None else None
            return StateEntry(
                template_id=key.template_id,
                locale=key.locale,
                path=key.path,
                build_state=row[0],
                generated_at=datetime.fromisoformat(row[1]),
                revalidation=RevalidationSnapshot(kind=row[2], interval=interval),
            )
        except aiosqlite.Error:
            log.warning("state_read_error", key=str(key), exc_info=True)
            return None

    async def _write(self, key: StateKey, entry: StateEntry) -> None:
        interval = entry.revalidation.interval
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO page_state "
                "(template_id, locale, path, build_state, generated_at, "
                "revalidation_kind, revalidation_interval) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    key.template_id,
                    key.locale,
                    key.path,
                    entry.build_state,
                    entry.generated_at.isoformat(),
                    entry.revalidation.kind,
                    interval.total_seconds() if interval is not None else None,
                ),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("state_write_error", key=str(key), exc_info=True)

    async def _remove(self, key: StateKey) -> None:
        try:
            await self._db.execute(
                "DELETE FROM page_state WHERE template_id = ? AND locale = ? AND path = ?",
                (key.template_id, key.locale, key.path),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("state_delete_error", key=str(key), exc_info=True)

    async def count(self, template_id: str | None = None) -> int:
        """Number of stored entries, optionally for one template. 0 on failure."""
        try:
            if template_id is None:
                cursor = await self._db.execute("SELECT COUNT(*) FROM page_state")
            else:
                cursor = await self._db.execute(
                    "SELECT COUNT(*) FROM page_state WHERE template_id = ?", (template_id,)
                )
            row = await cursor.fetchone()
            return int(row[0]) if row is not None else 0
        except aiosqlite.Error:
            log.warning("state_count_error", exc_info=True)
            return 0
