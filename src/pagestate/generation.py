"""Build-state generation with per-key single-flight.

The first caller to find an entry missing or stale takes the store's gate and
starts the generator in its own task; every other caller for the same key
waits for that task's committed result. The task is not owned by any caller,
so a request that times out or is cancelled leaves the generation running and
the result is still committed for everyone else.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from pagestate.errors import GenerationError, PathNotFoundError
from pagestate.models.request import EMPTY_CONTEXT
from pagestate.models.state import PathEntry, StateEntry, StateKey
from pagestate.serde import invoke, serialize_state

if TYPE_CHECKING:
    from pagestate.models.request import RequestContext
    from pagestate.models.template import Template
    from pagestate.paths import PathIndex
    from pagestate.revalidation import RevalidationEvaluator
    from pagestate.store import StateStore

log = structlog.get_logger()

Clock = Callable[[], datetime]


class IncrementalGenerator:
    def __init__(
        self,
        store: StateStore,
        evaluator: RevalidationEvaluator,
        paths: PathIndex,
        clock: Clock,
        wait_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._evaluator = evaluator
        self._paths = paths
        self._clock = clock
        self._wait_timeout = wait_timeout
        self._tasks: set[asyncio.Task[StateEntry]] = set()

    async def ensure_generated(
        self,
        template: Template,
        locale: str,
        path: str,
        request_context: RequestContext = EMPTY_CONTEXT,
    ) -> StateEntry:
        """Return a fresh entry for the page, generating it if needed.

        Raises ``PathNotFoundError`` for a path a non-incremental template
        never declared, and ``GenerationError`` when the generator fails.
        """
        key = StateKey(template.id, locale, path)
        entry = await self._store.get(key)
        if entry is not None:
            if not await self._evaluator.is_stale(entry, self._clock(), request_context):
                return entry
            log.info("entry_stale", key=str(key), policy=entry.revalidation.kind)
        elif not template.incremental and not self._paths.declares(template, locale, path):
            raise PathNotFoundError(template.id, locale, path)

        return await self._join_or_run(template, key)

    async def generate(self, template: Template, locale: str, path: str) -> StateEntry:
        """Generate unconditionally (build time), still through the gate."""
        return await self._join_or_run(template, StateKey(template.id, locale, path))

    async def drain(self) -> None:
        """Wait for every generation task still running."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _join_or_run(self, template: Template, key: StateKey) -> StateEntry:
        while True:
            if await self._store.try_begin_generation(key):
                task = asyncio.create_task(self._generate_and_commit(template, key))
                self._tasks.add(task)
                task.add_done_callback(self._forget)
                return await asyncio.shield(task)

            result = await self._store.wait_for_generation(key, self._wait_timeout)
            if result is None:
                # The owner finished between our gate check and our wait.
                current = await self._store.get(key)
                if current is not None:
                    return current
                continue
            if result.error is not None:
                error = result.error
                reason = error.reason if isinstance(error, GenerationError) else str(error)
                raise GenerationError(key.template_id, key.locale, key.path, reason) from error
            assert result.entry is not None
            return result.entry

    def _forget(self, task: asyncio.Task[StateEntry]) -> None:
        self._tasks.discard(task)
        # Mark the exception as retrieved; the owner may have stopped listening.
        if not task.cancelled():
            task.exception()

    async def _generate_and_commit(self, template: Template, key: StateKey) -> StateEntry:
        assert template.build_state is not None
        started = time.perf_counter()
        try:
            state = await invoke(template.build_state, key.path, key.locale)
            entry = StateEntry(
                template_id=key.template_id,
                locale=key.locale,
                path=key.path,
                build_state=serialize_state(state),
                generated_at=self._clock(),
                revalidation=template.policy.snapshot(),
            )
        except asyncio.CancelledError:
            await self._store.end_generation(
                key,
                error=GenerationError(key.template_id, key.locale, key.path, "cancelled"),
            )
            raise
        except Exception as exc:
            log.error(
                "generation_failed",
                template_id=key.template_id,
                locale=key.locale,
                path=key.path,
                invalidate=template.invalidate_on_failure,
                exc_info=True,
            )
            error = GenerationError(key.template_id, key.locale, key.path, str(exc) or repr(exc))
            await self._store.end_generation(
                key, error=error, invalidate=template.invalidate_on_failure
            )
            raise error from exc

        await self._store.end_generation(key, entry)
        if template.incremental:
            self._paths.add(template.id, PathEntry(key.locale, key.path))
        log.info(
            "state_generated",
            key=str(key),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return entry
