from __future__ import annotations

import re
from collections.abc import Callable
from datetime import timedelta
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pagestate.errors import InvalidTemplateError
from pagestate.models.state import RevalidationSnapshot

# Generator signatures; any of them may also be a coroutine function.
BuildStateFn = Callable[..., Any]  # (path, locale) -> S
BuildPathsFn = Callable[..., Any]  # (locale) -> Iterable[str]
RequestStateFn = Callable[..., Any]  # (path, locale, request_context) -> R
AmalgamateFn = Callable[..., Any]  # (S, R) -> final state
RevalidatePredicate = Callable[..., Any]  # (request_context, now) -> bool

_DURATION_PART = re.compile(r"(\d+)([smhdwMy])")
_DURATION_FULL = re.compile(r"^(?:\d+[smhdwMy])+$")
_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 60 * 60 * 24,
    "w": 60 * 60 * 24 * 7,
    "M": 60 * 60 * 24 * 30,
    "y": 60 * 60 * 24 * 365,
}


def parse_duration(value: str) -> timedelta:
    """Parse a compact duration such as ``"5s"``, ``"1h30m"`` or ``"1w"``.

    Units are case-sensitive: ``m`` is minutes, ``M`` is months (30 days),
    ``y`` is years (365 days).
    """
    text = value.strip()
    if not _DURATION_FULL.match(text):
        raise ValueError(f"Invalid duration: {value!r}")
    seconds = sum(int(n) * _UNIT_SECONDS[unit] for n, unit in _DURATION_PART.findall(text))
    return timedelta(seconds=seconds)


class NoRevalidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"

    def snapshot(self) -> RevalidationSnapshot:
        return RevalidationSnapshot(kind="none")


class IntervalRevalidation(BaseModel):
    """Entry goes stale once ``interval`` has elapsed since it was generated."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["interval"] = "interval"
    interval: timedelta

    @field_validator("interval", mode="before")
    @classmethod
    def parse_interval(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("revalidation interval must be positive")
        return v

    def snapshot(self) -> RevalidationSnapshot:
        return RevalidationSnapshot(kind="interval", interval=self.interval)


class ConditionalRevalidation(BaseModel):
    """Entry is stale whenever ``predicate(request_context, now)`` is true."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["conditional"] = "conditional"
    predicate: RevalidatePredicate

    def snapshot(self) -> RevalidationSnapshot:
        return RevalidationSnapshot(kind="conditional")


RevalidationPolicy = Annotated[
    NoRevalidation | IntervalRevalidation | ConditionalRevalidation,
    Field(discriminator="kind"),
]


class Template(BaseModel):
    """A page type and the generation strategies it opts into.

    Each generator slot is either a callable or ``None``; the orchestrator
    decides what to run purely from which slots are populated.

    ``revalidate`` also accepts shorthands: a duration string, a number of
    seconds or a ``timedelta`` become an ``IntervalRevalidation``, and a bare
    callable becomes a ``ConditionalRevalidation``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    build_state: BuildStateFn | None = None
    build_paths: BuildPathsFn | None = None
    request_state: RequestStateFn | None = None
    amalgamate: AmalgamateFn | None = None
    revalidate: RevalidationPolicy | None = None
    incremental: bool = False
    invalidate_on_failure: bool = False
    # Optional model used to rebuild typed build state from the cache.
    state_model: type[BaseModel] | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v or v != v.strip("/"):
            raise InvalidTemplateError(f"Invalid template ID: {v!r}")
        return v

    @field_validator("revalidate", mode="before")
    @classmethod
    def coerce_revalidate(cls, v: Any) -> Any:
        if v is None or isinstance(v, BaseModel | dict):
            return v
        if isinstance(v, str | int | float | timedelta):
            return {"kind": "interval", "interval": v}
        if callable(v):
            return {"kind": "conditional", "predicate": v}
        return v

    @model_validator(mode="after")
    def validate_slots(self) -> Template:
        if self.build_state is None:
            if self.build_paths is not None:
                raise InvalidTemplateError(f"{self.id}: build_paths requires build_state")
            if self.policy.kind != "none":
                raise InvalidTemplateError(f"{self.id}: revalidation requires build_state")
            if self.incremental:
                raise InvalidTemplateError(f"{self.id}: incremental requires build_state")
        return self

    @property
    def policy(self) -> NoRevalidation | IntervalRevalidation | ConditionalRevalidation:
        return self.revalidate if self.revalidate is not None else NoRevalidation()

    @property
    def is_static(self) -> bool:
        """True when the template declares neither build nor request state."""
        return self.build_state is None and self.request_state is None
