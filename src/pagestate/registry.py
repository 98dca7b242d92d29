"""Template registry: which generation strategies each template uses.

Templates are registered once at startup, after which ``freeze()`` makes the
registry read-only so it can be shared by every request without locking.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from pagestate.errors import DuplicateTemplateError, RegistryFrozenError, UnknownTemplateError

if TYPE_CHECKING:
    from pagestate.models.template import Template

log = structlog.get_logger()


@dataclass
class StrategyRegistry:
    # template ID → template
    by_id: dict[str, Template] = field(default_factory=dict)
    frozen: bool = False

    @classmethod
    def from_templates(cls, templates: Iterable[Template]) -> StrategyRegistry:
        registry = cls()
        for template in templates:
            registry.register(template)
        return registry

    def register(self, template: Template) -> None:
        if self.frozen:
            raise RegistryFrozenError(template.id)
        if template.id in self.by_id:
            raise DuplicateTemplateError(template.id)
        self.by_id[template.id] = template
        log.debug(
            "template_registered",
            template_id=template.id,
            build_state=template.build_state is not None,
            build_paths=template.build_paths is not None,
            request_state=template.request_state is not None,
            amalgamate=template.amalgamate is not None,
            revalidate=template.policy.kind,
            incremental=template.incremental,
        )

    def lookup(self, template_id: str) -> Template:
        try:
            return self.by_id[template_id]
        except KeyError:
            raise UnknownTemplateError(template_id) from None

    def freeze(self) -> None:
        self.frozen = True

    @property
    def templates(self) -> list[Template]:
        return list(self.by_id.values())

    def __contains__(self, template_id: object) -> bool:
        return template_id in self.by_id

    def __iter__(self) -> Iterator[Template]:
        return iter(self.by_id.values())

    def __len__(self) -> int:
        return len(self.by_id)
