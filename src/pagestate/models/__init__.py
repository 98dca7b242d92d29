from __future__ import annotations

from pagestate.models.outcome import PageOutcome
from pagestate.models.request import EMPTY_CONTEXT, RequestContext
from pagestate.models.state import PathEntry, RevalidationSnapshot, StateEntry, StateKey
from pagestate.models.template import (
    ConditionalRevalidation,
    IntervalRevalidation,
    NoRevalidation,
    RevalidationPolicy,
    Template,
    parse_duration,
)

__all__ = [
    # template
    "Template",
    "RevalidationPolicy",
    "NoRevalidation",
    "IntervalRevalidation",
    "ConditionalRevalidation",
    "parse_duration",
    # state
    "PathEntry",
    "StateKey",
    "StateEntry",
    "RevalidationSnapshot",
    # request
    "RequestContext",
    "EMPTY_CONTEXT",
    # outcome
    "PageOutcome",
]
