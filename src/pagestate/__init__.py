"""Page-state generation and revalidation engine."""

from __future__ import annotations

from pagestate.build import BuildReport, build_all
from pagestate.config import Settings
from pagestate.errors import ErrorCode, PageStateError
from pagestate.models import (
    ConditionalRevalidation,
    IntervalRevalidation,
    NoRevalidation,
    PageOutcome,
    RequestContext,
    StateEntry,
    StateKey,
    Template,
)
from pagestate.state import EngineContext, open_context

__version__ = "0.1.0"

__all__ = [
    "BuildReport",
    "build_all",
    "Settings",
    "ErrorCode",
    "PageStateError",
    "Template",
    "NoRevalidation",
    "IntervalRevalidation",
    "ConditionalRevalidation",
    "RequestContext",
    "StateEntry",
    "StateKey",
    "PageOutcome",
    "EngineContext",
    "open_context",
]
