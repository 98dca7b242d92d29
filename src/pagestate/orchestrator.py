"""Per-request driver that turns a (template, locale, path) into a PageOutcome.

States: Start, then build state (if declared) via the incremental generator,
then request state (if declared), then Amalgamate. Terminal states are Done,
NotFound (404-class) and Failed (500-class).

Every engine error ends in a terminal outcome; nothing is retried here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from pagestate.errors import (
    GenerationError,
    PageStateError,
    PathNotFoundError,
    UnknownTemplateError,
)
from pagestate.models.outcome import PageOutcome
from pagestate.models.request import EMPTY_CONTEXT
from pagestate.paths import normalize_path
from pagestate.serde import deserialize_state, invoke

if TYPE_CHECKING:
    from collections.abc import Collection

    from pagestate.amalgamation import Amalgamator
    from pagestate.generation import IncrementalGenerator
    from pagestate.models.request import RequestContext
    from pagestate.models.template import Template
    from pagestate.paths import PathIndex
    from pagestate.registry import StrategyRegistry

log = structlog.get_logger()


class RequestOrchestrator:
    def __init__(
        self,
        registry: StrategyRegistry,
        paths: PathIndex,
        generator: IncrementalGenerator,
        amalgamator: Amalgamator,
        locales: Collection[str],
        default_locale: str,
    ) -> None:
        self._registry = registry
        self._paths = paths
        self._generator = generator
        self._amalgamator = amalgamator
        self._locales = frozenset(locales)
        self._default_locale = default_locale

    async def handle(
        self,
        template_id: str,
        path: str = "",
        locale: str | None = None,
        request_context: RequestContext = EMPTY_CONTEXT,
    ) -> PageOutcome:
        locale = locale or self._default_locale
        try:
            template = self._registry.lookup(template_id)
            path = normalize_path(template.id, path)
            if locale not in self._locales:
                raise PathNotFoundError(template.id, locale, path)
            state = await self._run(template, locale, path, request_context)
        except (PathNotFoundError, UnknownTemplateError) as exc:
            log.info("page_not_found", template_id=template_id, locale=locale, path=path)
            return PageOutcome.not_found(exc)
        except PageStateError as exc:
            log.warning(
                "page_failed",
                template_id=template_id,
                locale=locale,
                path=path,
                code=str(exc.code),
            )
            return PageOutcome.failed(exc)

        log.debug("page_done", template_id=template_id, locale=locale, path=path)
        return PageOutcome.done(state)

    async def _run(
        self, template: Template, locale: str, path: str, request_context: RequestContext
    ) -> Any:
        if template.is_static:
            if not self._paths.declares(template, locale, path):
                raise PathNotFoundError(template.id, locale, path)
            return await self._amalgamator.amalgamate(template)

        halves: dict[str, Any] = {}
        if template.build_state is not None:
            entry = await self._generator.ensure_generated(
                template, locale, path, request_context
            )
            halves["build_state"] = deserialize_state(entry.build_state, template.state_model)
        elif not self._paths.declares(template, locale, path):
            # Request-state-only templates serve exactly their declared paths.
            raise PathNotFoundError(template.id, locale, path)

        if template.request_state is not None:
            halves["request_state"] = await self._request_state(
                template, locale, path, request_context
            )

        return await self._amalgamator.amalgamate(template, **halves, locale=locale, path=path)

    async def _request_state(
        self, template: Template, locale: str, path: str, request_context: RequestContext
    ) -> Any:
        assert template.request_state is not None
        try:
            return await invoke(template.request_state, path, locale, request_context)
        except Exception as exc:
            log.error(
                "request_state_failed",
                template_id=template.id,
                locale=locale,
                path=path,
                exc_info=True,
            )
            raise GenerationError(template.id, locale, path, str(exc) or repr(exc)) from exc
