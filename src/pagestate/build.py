"""Build-time generation.

Resolves every template's path set, records it in the context's PathIndex,
and generates the build state of every declared path. Any path-enumeration or
generation failure aborts the whole build.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from pagestate.errors import BuildError, PageStateError
from pagestate.models.state import StateKey
from pagestate.paths import PathSetResolver

if TYPE_CHECKING:
    from pagestate.models.template import Template
    from pagestate.state import EngineContext

log = structlog.get_logger()


@dataclass
class BuildReport:
    # template ID → number of (locale, path) pairs declared
    paths: dict[str, int] = field(default_factory=dict)
    generated: list[StateKey] = field(default_factory=list)


async def build_all(context: EngineContext) -> BuildReport:
    report = BuildReport()
    resolver = PathSetResolver(context.settings.i18n.locales)
    try:
        for template in context.registry:
            entries = await resolver.resolve(template)
            context.paths.add_all(template.id, entries)
            report.paths[template.id] = len(entries)

        semaphore = asyncio.Semaphore(context.settings.build.concurrency)

        async def generate(template: Template, locale: str, path: str) -> None:
            async with semaphore:
                entry = await context.generator.generate(template, locale, path)
            report.generated.append(entry.key)

        async with asyncio.TaskGroup() as group:
            for template in context.registry:
                if template.build_state is None:
                    continue
                for entry in sorted(context.paths.paths_for(template.id)):
                    group.create_task(generate(template, entry.locale, entry.path))
    except PageStateError as exc:
        raise _abort(exc) from exc
    except ExceptionGroup as errors:
        failures = errors.subgroup(PageStateError)
        if failures is None:
            raise
        cause = failures.exceptions[0]
        assert isinstance(cause, PageStateError)
        raise _abort(cause) from errors

    report.generated.sort()
    log.info(
        "build_complete",
        templates=len(report.paths),
        paths=sum(report.paths.values()),
        generated=len(report.generated),
    )
    return report


def _abort(cause: PageStateError) -> BuildError:
    log.error("build_failed", code=str(cause.code), message=cause.message)
    return BuildError(cause)
