"""Failure taxonomy shared by the dispatcher and the subsystems."""

from __future__ import annotations

from enum import Enum


class FailureKind(Enum):
    """Severity tier of a failure escaping a subsystem."""

    USAGE_ERROR = (1, None)
    UNEXPECTED_FAILURE = (2, "UNEXPECTED TOP-LEVEL EXCEPTION:")
    UNEXPECTED_ERROR = (3, "UNEXPECTED TOP-LEVEL ERROR:")

    def __init__(self, exit_status: int, header: str | None) -> None:
        self.exit_status = exit_status
        self.header = header


# Exceptions that signal a broken runtime rather than a defect in one run.
SEVERE_ERRORS: tuple[type[BaseException], ...] = (
    ImportError,
    MemoryError,
    RecursionError,
    SystemError,
)

# Severe errors that point at a missing or mismatched installation.
LINKAGE_ERRORS: tuple[type[BaseException], ...] = (ImportError,)

INCOMPATIBLE_RUNTIME_NOTE = (
    "Note: You may be using an incompatible Python interpreter or "
    "package installation.\n"
    "(Check that dxtool and its subsystems were installed into the "
    "interpreter running dx.)"
)


class DxError(Exception):
    """Base class for failures raised by the tool suite itself."""

    kind: FailureKind = FailureKind.UNEXPECTED_FAILURE


class UsageError(DxError):
    """Raised when the command line cannot be acted upon."""

    kind = FailureKind.USAGE_ERROR


class DumpCreationError(DxError):
    """Raised when a diagnostic dump file cannot be created."""

    kind = FailureKind.UNEXPECTED_FAILURE


class EntrypointError(DxError, ImportError):
    """Raised when a subsystem module lacks its advertised entrypoint."""

    kind = FailureKind.UNEXPECTED_ERROR


def failure_kind(exc: BaseException) -> FailureKind:
    """Return the severity tier for ``exc``."""

    kind = getattr(exc, "kind", None)
    if isinstance(kind, FailureKind):
        return kind
    if isinstance(exc, SEVERE_ERRORS):
        return FailureKind.UNEXPECTED_ERROR
    return FailureKind.UNEXPECTED_FAILURE


def is_linkage_error(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` suggests an incompatible installation."""

    return isinstance(exc, LINKAGE_ERRORS)


__all__ = [
    "DumpCreationError",
    "DxError",
    "EntrypointError",
    "FailureKind",
    "INCOMPATIBLE_RUNTIME_NOTE",
    "LINKAGE_ERRORS",
    "SEVERE_ERRORS",
    "UsageError",
    "failure_kind",
    "is_linkage_error",
]
