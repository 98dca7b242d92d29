from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True, eq=False)
class RequestContext:
    """Read-only view of an inbound request, handed to request-time callables.

    Header names are case-insensitive. The engine never mutates a context and
    never stores one.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    path: str = ""
    locale: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        lowered = {name.lower(): value for name, value in self.headers.items()}
        object.__setattr__(self, "headers", MappingProxyType(lowered))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)


EMPTY_CONTEXT = RequestContext()
