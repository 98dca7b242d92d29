from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True, order=True)
class PathEntry:
    """A (locale, path) pair declared to be statically generated."""

    locale: str
    path: str


@dataclass(frozen=True, order=True)
class StateKey:
    """Cache key for one generated page."""

    template_id: str
    locale: str
    path: str

    def __str__(self) -> str:
        return f"{self.template_id}:{self.locale}:{self.path}"


class RevalidationSnapshot(BaseModel):
    """The revalidation policy in force when an entry was generated.

    Conditional snapshots do not carry the predicate itself (it is not
    serializable); it is resolved through the registry by template ID.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["none", "interval", "conditional"] = "none"
    interval: timedelta | None = None


class StateEntry(BaseModel):
    """Generated state for one page, as committed to a StateStore."""

    model_config = ConfigDict(frozen=True)

    template_id: str
    locale: str
    path: str
    build_state: str | None = None  # JSON text
    request_state: str | None = None  # Dropped by every store on write
    generated_at: datetime
    revalidation: RevalidationSnapshot = RevalidationSnapshot()
    generating: bool = False  # Filled in on read from the store's gate

    @property
    def key(self) -> StateKey:
        return StateKey(self.template_id, self.locale, self.path)
