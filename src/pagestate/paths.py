"""Build-path enumeration and the index of paths each template serves."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from pagestate.errors import DuplicatePathError, PathGenerationError
from pagestate.models.state import PathEntry
from pagestate.serde import invoke

if TYPE_CHECKING:
    from pagestate.models.template import Template

log = structlog.get_logger()


def normalize_path(template_id: str, path: str) -> str:
    """Strip surrounding slashes; the empty path maps to the template itself."""
    stripped = path.strip("/")
    return stripped or template_id


class PathSetResolver:
    """Expands a template's build-paths generator over every configured locale."""

    def __init__(self, locales: Iterable[str]) -> None:
        self._locales = list(locales)

    async def resolve(self, template: Template) -> set[PathEntry]:
        if template.build_paths is None:
            return {PathEntry(locale, template.id) for locale in self._locales}

        resolved: set[PathEntry] = set()
        for locale in self._locales:
            for path in await self._paths_for_locale(template, locale):
                entry = PathEntry(locale, normalize_path(template.id, path))
                if entry in resolved:
                    raise DuplicatePathError(template.id, locale, entry.path)
                resolved.add(entry)

        log.info("build_paths_resolved", template_id=template.id, count=len(resolved))
        return resolved

    async def _paths_for_locale(self, template: Template, locale: str) -> list[str]:
        assert template.build_paths is not None
        try:
            paths = await invoke(template.build_paths, locale)
        except Exception as exc:
            log.error(
                "build_paths_failed", template_id=template.id, locale=locale, exc_info=True
            )
            raise PathGenerationError(template.id, locale, str(exc) or repr(exc)) from exc

        if isinstance(paths, str | bytes) or not isinstance(paths, Iterable):
            raise PathGenerationError(
                template.id, locale, f"expected an iterable of paths, got {type(paths).__name__}"
            )
        paths = list(paths)
        for path in paths:
            if not isinstance(path, str):
                raise PathGenerationError(
                    template.id, locale, f"path {path!r} is not a string"
                )
        return paths


@dataclass
class PathIndex:
    """Paths each template is known to serve, per locale.

    Populated at build time and extended lazily when an incremental template
    generates a path for the first time.
    """

    # template ID → declared (locale, path) pairs
    by_template: dict[str, set[PathEntry]] = field(default_factory=dict)

    def add(self, template_id: str, entry: PathEntry) -> None:
        self.by_template.setdefault(template_id, set()).add(entry)

    def add_all(self, template_id: str, entries: Iterable[PathEntry]) -> None:
        self.by_template.setdefault(template_id, set()).update(entries)

    def contains(self, template_id: str, locale: str, path: str) -> bool:
        return PathEntry(locale, path) in self.by_template.get(template_id, ())

    def declares(self, template: Template, locale: str, path: str) -> bool:
        """Whether ``path`` is one the template serves without incremental generation."""
        if template.build_paths is None:
            return path == template.id
        return self.contains(template.id, locale, path)

    def paths_for(self, template_id: str) -> frozenset[PathEntry]:
        return frozenset(self.by_template.get(template_id, ()))
