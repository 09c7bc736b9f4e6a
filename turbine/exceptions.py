"""Turbine — Exception hierarchy.

All exceptions defined here inherit from TurbineError so that callers
can catch the full family with a single except clause when needed.

Hierarchy:
    TurbineError
    ├── ConfigurationError
    ├── JobError
    │   ├── SpawnError
    │   ├── SubprocessError
    │   └── JobTimeoutError
    ├── CacheError
    │   ├── CacheCorruptionError
    │   └── CacheKeyError
    ├── PackageError
    │   ├── PackageNotFoundError
    │   ├── InvalidSpecError
    │   └── MissingSourceError
    └── ActivationError

JobError instances are never raised across the scheduler boundary: they
travel inside a failed ``JobResult`` and reach callers as the failure
message.  CacheCorruptionError is swallowed by ``CacheStore.get``.
"""

from __future__ import annotations

from typing import Any


class TurbineError(Exception):
    """Base exception for all Turbine errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(TurbineError):
    """Options are malformed or out of range.  Fatal at setup."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, context={"errors": errors or []})
        self.errors = errors or []


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class JobError(TurbineError):
    """Base for subprocess job failures."""

    def __init__(self, message: str, argv: tuple[str, ...] = (), **context: Any) -> None:
        super().__init__(message, context={"argv": list(argv), **context})
        self.argv = argv


class SpawnError(JobError):
    """The executable could not be started (missing, not executable, bad cwd)."""

    def __init__(self, argv: tuple[str, ...], reason: str) -> None:
        program = argv[0] if argv else "<empty>"
        super().__init__(f"Failed to spawn '{program}': {reason}", argv, reason=reason)
        self.reason = reason


class SubprocessError(JobError):
    """The process ran and exited with a nonzero code."""

    def __init__(self, argv: tuple[str, ...], exit_code: int, stderr: str) -> None:
        message = stderr.strip() or f"'{' '.join(argv)}' exited with code {exit_code}"
        super().__init__(message, argv, exit_code=exit_code)
        self.exit_code = exit_code
        self.stderr = stderr


class JobTimeoutError(JobError):
    """The process exceeded the configured deadline."""

    def __init__(self, argv: tuple[str, ...], timeout_ms: int) -> None:
        super().__init__(
            f"'{' '.join(argv)}' timed out after {timeout_ms} ms",
            argv,
            timeout_ms=timeout_ms,
        )
        self.timeout_ms = timeout_ms


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class CacheError(TurbineError):
    """Base for cache store errors."""


class CacheCorruptionError(CacheError):
    """A persisted cache payload could not be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(
            f"Cache entry '{key}' is corrupt: {reason}",
            context={"key": key, "reason": reason},
        )
        self.key = key


class CacheKeyError(CacheError):
    """The key is empty, contains a path separator, or is too long."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Invalid cache key {key!r}: {reason}", context={"key": key})
        self.key = key


# ---------------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------------


class PackageError(TurbineError):
    """Base for package registry errors."""


class PackageNotFoundError(PackageError):
    """No package with the given name is registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Package '{name}' is not registered", context={"package": name})
        self.name = name


class InvalidSpecError(PackageError):
    """A registration value could not be turned into a PackageSpec."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(
            f"Invalid spec for package '{name}': {reason}",
            context={"package": name, "reason": reason},
        )
        self.name = name


class MissingSourceError(PackageError):
    """The spec has no source url, so there is nothing to fetch."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No URL specified for '{name}'", context={"package": name})
        self.name = name


class SpecTableUnavailableError(PackageError):
    """The persisted spec table exists but could not be restored.

    Raised instead of cleaning, since every installed package would look
    untracked against an empty table.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"The persisted package table could not be restored ({reason}); "
            "register the packages to keep before cleaning",
            context={"reason": reason},
        )


# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------


class ActivationError(TurbineError):
    """Loading a package's source or running its config callback failed."""

    def __init__(self, name: str, stage: str, cause: BaseException) -> None:
        super().__init__(
            f"Activation of '{name}' failed during {stage}: {cause}",
            context={"package": name, "stage": stage, "cause": str(cause)},
        )
        self.name = name
        self.stage = stage
        self.cause = cause
