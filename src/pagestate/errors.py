"""Error taxonomy for the page-state engine.

Every error raised across the public API is a ``PageStateError`` carrying a
machine-readable ``ErrorCode`` and a ``recoverable`` flag. Build-time errors
(path enumeration, build generation) are fatal to the build. Request-time
errors are turned into ``PageOutcome`` values by the orchestrator, so the
transport layer only ever has to look at ``PageOutcome.status``.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    DUPLICATE_TEMPLATE = "DUPLICATE_TEMPLATE"
    UNKNOWN_TEMPLATE = "UNKNOWN_TEMPLATE"
    REGISTRY_FROZEN = "REGISTRY_FROZEN"
    INVALID_TEMPLATE = "INVALID_TEMPLATE"
    PATH_GENERATION_FAILED = "PATH_GENERATION_FAILED"
    DUPLICATE_PATH = "DUPLICATE_PATH"
    PATH_NOT_FOUND = "PATH_NOT_FOUND"
    GENERATION_FAILED = "GENERATION_FAILED"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
    AMALGAMATION_FAILED = "AMALGAMATION_FAILED"
    SERIALIZATION_FAILED = "SERIALIZATION_FAILED"
    BUILD_FAILED = "BUILD_FAILED"


class PageStateError(Exception):
    """Base class for all engine errors."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, object]:
        return {"code": str(self.code), "message": self.message, "recoverable": self.recoverable}


class LocatedError(PageStateError):
    """An error tied to a single (template, locale, path) location."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        template_id: str,
        locale: str | None = None,
        path: str | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(code, message, recoverable)
        self.template_id = template_id
        self.locale = locale
        self.path = path

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data.update(template_id=self.template_id, locale=self.locale, path=self.path)
        return data


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class DuplicateTemplateError(PageStateError):
    def __init__(self, template_id: str) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_TEMPLATE, f"Template {template_id!r} is already registered"
        )
        self.template_id = template_id


class UnknownTemplateError(PageStateError):
    def __init__(self, template_id: str) -> None:
        super().__init__(ErrorCode.UNKNOWN_TEMPLATE, f"No template registered as {template_id!r}")
        self.template_id = template_id


class RegistryFrozenError(PageStateError):
    def __init__(self, template_id: str) -> None:
        super().__init__(
            ErrorCode.REGISTRY_FROZEN,
            f"Cannot register {template_id!r}: the registry is read-only after startup",
        )
        self.template_id = template_id


class InvalidTemplateError(PageStateError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INVALID_TEMPLATE, message)


# ---------------------------------------------------------------------------
# Build time (fatal)
# ---------------------------------------------------------------------------


class PathGenerationError(LocatedError):
    def __init__(self, template_id: str, locale: str, reason: str) -> None:
        super().__init__(
            ErrorCode.PATH_GENERATION_FAILED,
            f"Build paths for {template_id!r} ({locale}) failed: {reason}",
            template_id=template_id,
            locale=locale,
        )


class DuplicatePathError(LocatedError):
    def __init__(self, template_id: str, locale: str, path: str) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_PATH,
            f"Path {path!r} declared more than once for {template_id!r} ({locale})",
            template_id=template_id,
            locale=locale,
            path=path,
        )


class BuildError(PageStateError):
    """Raised by the build driver; ``cause`` holds the error that aborted it."""

    def __init__(self, cause: PageStateError) -> None:
        super().__init__(ErrorCode.BUILD_FAILED, f"Build aborted: {cause.message}")
        self.cause = cause


# ---------------------------------------------------------------------------
# Request time
# ---------------------------------------------------------------------------


class PathNotFoundError(LocatedError):
    def __init__(self, template_id: str, locale: str, path: str) -> None:
        super().__init__(
            ErrorCode.PATH_NOT_FOUND,
            f"Path {path!r} ({locale}) is not served by template {template_id!r}",
            template_id=template_id,
            locale=locale,
            path=path,
        )


class GenerationError(LocatedError):
    """A state generator failed. Never cached."""

    def __init__(self, template_id: str, locale: str, path: str, reason: str) -> None:
        super().__init__(
            ErrorCode.GENERATION_FAILED,
            f"State generation for {template_id!r} at {path!r} ({locale}) failed: {reason}",
            template_id=template_id,
            locale=locale,
            path=path,
            recoverable=True,
        )
        self.reason = reason


class GenerationTimeoutError(LocatedError):
    def __init__(self, template_id: str, locale: str, path: str, timeout: float) -> None:
        super().__init__(
            ErrorCode.GENERATION_TIMEOUT,
            f"Gave up waiting {timeout}s for in-flight generation of {path!r} ({locale})",
            template_id=template_id,
            locale=locale,
            path=path,
            recoverable=True,
        )


class AmalgamationError(LocatedError):
    def __init__(
        self,
        template_id: str,
        reason: str,
        *,
        locale: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.AMALGAMATION_FAILED,
            f"Amalgamation for {template_id!r} failed: {reason}",
            template_id=template_id,
            locale=locale,
            path=path,
            recoverable=True,
        )


class SerializationError(PageStateError):
    def __init__(self, reason: str) -> None:
        super().__init__(ErrorCode.SERIALIZATION_FAILED, f"State is not serializable: {reason}")
