"""Shared fixtures: settings, a controllable clock, and a context factory."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

import pytest

from pagestate.config import Settings
from pagestate.models.template import Template
from pagestate.registry import StrategyRegistry
from pagestate.state import EngineContext
from pagestate.store import MemoryStateStore

EPOCH = datetime(2026, 1, 1, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(i18n={"locales": ["en-US", "fr-FR"], "default_locale": "en-US"})


@pytest.fixture()
def make_context(
    settings: Settings, clock: FakeClock
) -> Callable[[Iterable[Template]], EngineContext]:
    """Build a memory-backed context around the given templates."""

    def factory(templates: Iterable[Template], **overrides: object) -> EngineContext:
        registry = StrategyRegistry.from_templates(templates)
        registry.freeze()
        effective = settings.model_copy(update=overrides) if overrides else settings
        return EngineContext.create(effective, registry, MemoryStateStore(), clock)

    return factory
