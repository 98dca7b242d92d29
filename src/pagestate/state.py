"""Engine context: everything a request handler needs, created once at startup.

There are no module-level singletons. The host process builds one
``EngineContext`` (normally through ``open_context``) and hands it to every
request handler.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from pagestate.amalgamation import Amalgamator
from pagestate.generation import IncrementalGenerator
from pagestate.models.request import EMPTY_CONTEXT
from pagestate.orchestrator import RequestOrchestrator
from pagestate.paths import PathIndex
from pagestate.registry import StrategyRegistry
from pagestate.revalidation import RevalidationEvaluator
from pagestate.store import MemoryStateStore, SqliteStateStore

if TYPE_CHECKING:
    from pagestate.config import Settings
    from pagestate.models.outcome import PageOutcome
    from pagestate.models.request import RequestContext
    from pagestate.models.template import Template
    from pagestate.store import StateStore

log = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class EngineContext:
    settings: Settings
    registry: StrategyRegistry
    store: StateStore
    paths: PathIndex
    clock: Callable[[], datetime]
    evaluator: RevalidationEvaluator
    generator: IncrementalGenerator
    amalgamator: Amalgamator
    orchestrator: RequestOrchestrator

    @classmethod
    def create(
        cls,
        settings: Settings,
        registry: StrategyRegistry,
        store: StateStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> EngineContext:
        """Wire the engine components around an existing registry and store."""
        paths = PathIndex()
        evaluator = RevalidationEvaluator(registry)
        generator = IncrementalGenerator(
            store,
            evaluator,
            paths,
            clock,
            wait_timeout=settings.generation.wait_timeout_seconds,
        )
        amalgamator = Amalgamator()
        orchestrator = RequestOrchestrator(
            registry,
            paths,
            generator,
            amalgamator,
            locales=settings.i18n.locales,
            default_locale=settings.i18n.default_locale,
        )
        return cls(
            settings=settings,
            registry=registry,
            store=store,
            paths=paths,
            clock=clock,
            evaluator=evaluator,
            generator=generator,
            amalgamator=amalgamator,
            orchestrator=orchestrator,
        )

    async def handle(
        self,
        template_id: str,
        path: str = "",
        locale: str | None = None,
        request_context: RequestContext = EMPTY_CONTEXT,
    ) -> PageOutcome:
        return await self.orchestrator.handle(template_id, path, locale, request_context)


@asynccontextmanager
async def open_context(
    settings: Settings,
    templates: Iterable[Template],
    clock: Callable[[], datetime] = utc_now,
) -> AsyncIterator[EngineContext]:
    """Register ``templates``, open the configured store and yield a context.

    The registry is frozen before the context is handed out. On exit, any
    generation still running is awaited before the store is closed.
    """
    registry = StrategyRegistry.from_templates(templates)
    registry.freeze()

    async with AsyncExitStack() as stack:
        store: StateStore
        if settings.store.backend == "sqlite":
            db_path = Path(settings.store.db_path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            db = await stack.enter_async_context(aiosqlite.connect(db_path))
            store = SqliteStateStore(db)
            await store.init_db()
        else:
            store = MemoryStateStore()

        context = EngineContext.create(settings, registry, store, clock)
        log.info(
            "engine_started",
            templates=len(registry),
            store=settings.store.backend,
            locales=settings.i18n.locales,
        )
        try:
            yield context
        finally:
            await context.generator.drain()
