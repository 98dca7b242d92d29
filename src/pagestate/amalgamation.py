"""Merging build-time and request-time state into the final page state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from pagestate.errors import AmalgamationError
from pagestate.serde import invoke

if TYPE_CHECKING:
    from pagestate.models.template import Template

log = structlog.get_logger()

_ABSENT = object()


class Amalgamator:
    """Combines the two state halves of a page.

    The merge function only runs when both halves exist. With one half the
    result is that half, untouched. Without a merge function, request state
    takes precedence over build state. Nothing produced here is ever cached.
    """

    async def amalgamate(
        self,
        template: Template,
        build_state: Any = _ABSENT,
        request_state: Any = _ABSENT,
        *,
        locale: str | None = None,
        path: str | None = None,
    ) -> Any:
        has_build = build_state is not _ABSENT
        has_request = request_state is not _ABSENT

        if has_build and has_request:
            if template.amalgamate is None:
                return request_state
            try:
                return await invoke(template.amalgamate, build_state, request_state)
            except Exception as exc:
                log.error(
                    "amalgamation_failed",
                    template_id=template.id,
                    locale=locale,
                    path=path,
                    exc_info=True,
                )
                raise AmalgamationError(
                    template.id, str(exc) or repr(exc), locale=locale, path=path
                ) from exc
        if has_build:
            return build_state
        if has_request:
            return request_state
        return None
