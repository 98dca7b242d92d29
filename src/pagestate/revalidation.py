"""Staleness decisions for committed state entries.

A missing entry is "not yet generated", which is a different thing from
stale; callers check for ``None`` before asking this module anything.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pagestate.errors import UnknownTemplateError
from pagestate.models.template import ConditionalRevalidation, IntervalRevalidation
from pagestate.serde import invoke

if TYPE_CHECKING:
    from datetime import datetime

    from pagestate.models.request import RequestContext
    from pagestate.models.state import StateEntry
    from pagestate.registry import StrategyRegistry

log = structlog.get_logger()


class RevalidationEvaluator:
    """Decides staleness against the template's current policy.

    An entry written under a different policy than the one now registered is
    stale.
    """

    def __init__(self, registry: StrategyRegistry) -> None:
        self._registry = registry

    async def is_stale(
        self, entry: StateEntry, now: datetime, request_context: RequestContext
    ) -> bool:
        context = {"template_id": entry.template_id, "locale": entry.locale, "path": entry.path}
        try:
            policy = self._registry.lookup(entry.template_id).policy
        except UnknownTemplateError:
            log.warning("revalidation_template_missing", **context)
            return False

        if policy.snapshot() != entry.revalidation:
            log.info(
                "revalidation_policy_changed",
                stored=entry.revalidation.kind,
                policy=policy.kind,
                **context,
            )
            return True

        if isinstance(policy, IntervalRevalidation):
            return now - entry.generated_at >= policy.interval
        if isinstance(policy, ConditionalRevalidation):
            return await self._check_predicate(policy, now, request_context, context)
        return False

    async def _check_predicate(
        self,
        policy: ConditionalRevalidation,
        now: datetime,
        request_context: RequestContext,
        context: dict[str, str],
    ) -> bool:
        # Predicate failures fail open: keep serving what we have rather than
        # regenerating on every request while the predicate is broken.
        try:
            return bool(await invoke(policy.predicate, request_context, now))
        except Exception:
            log.error("revalidation_predicate_failed", exc_info=True, **context)
            return False
