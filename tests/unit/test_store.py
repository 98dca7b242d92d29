"""Unit tests for pagestate.store."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from pagestate.errors import GenerationError, GenerationTimeoutError
from pagestate.models.state import RevalidationSnapshot, StateEntry, StateKey

if TYPE_CHECKING:
    from pagestate.store import BaseStateStore, SqliteStateStore

EPOCH = datetime(2026, 1, 1, tzinfo=UTC)
KEY = StateKey("post", "en-US", "hello")


def _entry(build_state: str = '{"n":1}', seconds: int = 0, **kwargs: object) -> StateEntry:
    return StateEntry(
        template_id=KEY.template_id,
        locale=KEY.locale,
        path=KEY.path,
        build_state=build_state,
        generated_at=EPOCH + timedelta(seconds=seconds),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# get / put / delete
# ---------------------------------------------------------------------------


class TestReadWrite:
    async def test_get_nonexistent_returns_none(self, store: BaseStateStore) -> None:
        assert await store.get(KEY) is None

    async def test_put_and_get(self, store: BaseStateStore) -> None:
        entry = _entry(revalidation=RevalidationSnapshot(kind="interval", interval=timedelta(5)))
        await store.put(KEY, entry)

        stored = await store.get(KEY)
        assert stored == entry
        assert stored.generating is False

    async def test_put_replaces_whole_entry(self, store: BaseStateStore) -> None:
        await store.put(KEY, _entry('{"n":1}', seconds=0))
        await store.put(KEY, _entry('{"n":2}', seconds=60))

        stored = await store.get(KEY)
        assert stored is not None
        assert stored.build_state == '{"n":2}'
        assert stored.generated_at == EPOCH + timedelta(seconds=60)

    async def test_request_state_is_never_stored(self, store: BaseStateStore) -> None:
        await store.put(KEY, _entry(request_state='{"ip":"1.2.3.4"}'))

        stored = await store.get(KEY)
        assert stored is not None
        assert stored.request_state is None

    async def test_delete(self, store: BaseStateStore) -> None:
        await store.put(KEY, _entry())
        await store.delete(KEY)
        assert await store.get(KEY) is None

    async def test_keys_are_independent(self, store: BaseStateStore) -> None:
        other = StateKey("post", "fr-FR", "hello")
        await store.put(KEY, _entry('{"lang":"en"}'))
        await store.put(
            other,
            StateEntry(
                template_id="post",
                locale="fr-FR",
                path="hello",
                build_state='{"lang":"fr"}',
                generated_at=EPOCH,
            ),
        )
        assert (await store.get(KEY)).build_state == '{"lang":"en"}'
        assert (await store.get(other)).build_state == '{"lang":"fr"}'


# ---------------------------------------------------------------------------
# Single-flight gate
# ---------------------------------------------------------------------------


class TestGenerationGate:
    async def test_only_one_caller_gets_the_gate(self, store: BaseStateStore) -> None:
        assert await store.try_begin_generation(KEY) is True
        assert await store.try_begin_generation(KEY) is False
        assert await store.try_begin_generation(StateKey("post", "en-US", "other")) is True

    async def test_end_generation_commits_and_releases(self, store: BaseStateStore) -> None:
        await store.try_begin_generation(KEY)
        await store.end_generation(KEY, _entry())

        assert (await store.get(KEY)).build_state == '{"n":1}'
        assert await store.try_begin_generation(KEY) is True

    async def test_get_reports_generation_in_progress(self, store: BaseStateStore) -> None:
        await store.put(KEY, _entry())
        await store.try_begin_generation(KEY)

        entry = await store.get(KEY)
        assert entry is not None
        assert entry.generating is True

    async def test_failure_keeps_previous_entry(self, store: BaseStateStore) -> None:
        await store.put(KEY, _entry('{"good":true}'))
        await store.try_begin_generation(KEY)
        await store.end_generation(KEY, error=RuntimeError("boom"))

        stored = await store.get(KEY)
        assert stored is not None
        assert stored.build_state == '{"good":true}'
        assert await store.try_begin_generation(KEY) is True

    async def test_failure_with_invalidate_removes_entry(self, store: BaseStateStore) -> None:
        await store.put(KEY, _entry())
        await store.try_begin_generation(KEY)
        await store.end_generation(KEY, error=RuntimeError("boom"), invalidate=True)

        assert await store.get(KEY) is None

    async def test_waiters_receive_the_committed_entry(self, store: BaseStateStore) -> None:
        await store.try_begin_generation(KEY)
        waiters = [asyncio.create_task(store.wait_for_generation(KEY)) for _ in range(3)]
        await asyncio.sleep(0)

        await store.end_generation(KEY, _entry('{"n":7}'))
        results = await asyncio.gather(*waiters)

        assert all(r is not None and r.error is None for r in results)
        assert {r.entry.build_state for r in results} == {'{"n":7}'}

    async def test_waiters_receive_the_error(self, store: BaseStateStore) -> None:
        await store.try_begin_generation(KEY)
        waiter = asyncio.create_task(store.wait_for_generation(KEY))
        await asyncio.sleep(0)

        error = GenerationError("post", "en-US", "hello", "boom")
        await store.end_generation(KEY, error=error)
        result = await waiter

        assert result is not None
        assert result.entry is None
        assert result.error is error

    async def test_wait_without_generation_returns_none(self, store: BaseStateStore) -> None:
        assert await store.wait_for_generation(KEY) is None

    async def test_wait_timeout_leaves_generation_running(self, store: BaseStateStore) -> None:
        await store.try_begin_generation(KEY)

        with pytest.raises(GenerationTimeoutError) as exc_info:
            await store.wait_for_generation(KEY, timeout=0.01)
        assert exc_info.value.recoverable is True

        # The gate is still held, and the owner can still commit.
        assert await store.try_begin_generation(KEY) is False
        await store.end_generation(KEY, _entry())
        assert await store.get(KEY) is not None

    async def test_cancelled_waiter_does_not_affect_others(self, store: BaseStateStore) -> None:
        await store.try_begin_generation(KEY)
        abandoned = asyncio.create_task(store.wait_for_generation(KEY))
        patient = asyncio.create_task(store.wait_for_generation(KEY))
        await asyncio.sleep(0)

        abandoned.cancel()
        await store.end_generation(KEY, _entry())

        result = await patient
        assert result is not None and result.entry is not None
        assert abandoned.cancelled()


# ---------------------------------------------------------------------------
# Torn reads
# ---------------------------------------------------------------------------


class TestConsistentReads:
    async def test_readers_never_mix_two_generations(self, store: BaseStateStore) -> None:
        """Every read pairs a generation's state with that generation's timestamp."""

        async def writer() -> None:
            for n in range(50):
                await store.put(KEY, _entry(f'{{"n":{n}}}', seconds=n))
                await asyncio.sleep(0)

        async def reader() -> list[StateEntry]:
            seen = []
            for _ in range(50):
                entry = await store.get(KEY)
                if entry is not None:
                    seen.append(entry)
                await asyncio.sleep(0)
            return seen

        _, *reads = await asyncio.gather(writer(), reader(), reader())
        for entries in reads:
            for entry in entries:
                n = int(entry.build_state.split(":")[1].rstrip("}"))
                assert entry.generated_at == EPOCH + timedelta(seconds=n)


# ---------------------------------------------------------------------------
# SQLite degradation
# ---------------------------------------------------------------------------


class TestSqliteFailures:
    async def test_read_failure_returns_none(self, sqlite_store: SqliteStateStore) -> None:
        """Simulate a database read error: should return None, not raise."""
        await sqlite_store.put(KEY, _entry())
        original_execute = sqlite_store._db.execute

        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        sqlite_store._db.execute = failing_execute  # type: ignore[assignment]
        entry = await sqlite_store.get(KEY)
        assert entry is None
        sqlite_store._db.execute = original_execute  # type: ignore[assignment]

    async def test_write_failure_does_not_raise(self, sqlite_store: SqliteStateStore) -> None:
        """Simulate a database write error: should not raise."""
        original_execute = sqlite_store._db.execute

        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        sqlite_store._db.execute = failing_execute  # type: ignore[assignment]
        # This should not raise
        await sqlite_store.put(KEY, _entry())
        sqlite_store._db.execute = original_execute  # type: ignore[assignment]
        assert await sqlite_store.get(KEY) is None

    async def test_write_failure_still_releases_gate(
        self, sqlite_store: SqliteStateStore
    ) -> None:
        original_execute = sqlite_store._db.execute

        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        await sqlite_store.try_begin_generation(KEY)
        waiter = asyncio.create_task(sqlite_store.wait_for_generation(KEY))
        await asyncio.sleep(0)

        sqlite_store._db.execute = failing_execute  # type: ignore[assignment]
        await sqlite_store.end_generation(KEY, _entry())
        sqlite_store._db.execute = original_execute  # type: ignore[assignment]

        # Waiters still get the generated entry even though it was not persisted.
        result = await waiter
        assert result is not None and result.entry is not None
        assert await sqlite_store.try_begin_generation(KEY) is True

    async def test_count(self, sqlite_store: SqliteStateStore) -> None:
        await sqlite_store.put(KEY, _entry())
        await sqlite_store.put(
            StateKey("about", "en-US", "about"),
            StateEntry(template_id="about", locale="en-US", path="about", generated_at=EPOCH),
        )
        assert await sqlite_store.count() == 2
        assert await sqlite_store.count("post") == 1
