from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from pagestate.errors import PageStateError

OutcomeStatus = Literal["done", "not_found", "failed"]

_HTTP_STATUS: dict[str, int] = {"done": 200, "not_found": 404, "failed": 500}


@dataclass(frozen=True)
class PageOutcome:
    """Terminal result of one page request.

    ``state`` is the final page state and is only meaningful when ``status``
    is ``"done"``; ``error`` is set for the other two statuses.
    """

    status: OutcomeStatus
    state: Any = None
    error: PageStateError | None = None

    @classmethod
    def done(cls, state: Any) -> PageOutcome:
        return cls(status="done", state=state)

    @classmethod
    def not_found(cls, error: PageStateError) -> PageOutcome:
        return cls(status="not_found", error=error)

    @classmethod
    def failed(cls, error: PageStateError) -> PageOutcome:
        return cls(status="failed", error=error)

    @property
    def ok(self) -> bool:
        return self.status == "done"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.status]
