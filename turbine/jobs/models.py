"""Job data models.

JobRequest  — what to run, where, and who to tell when it is done
JobResult   — outcome of one run, delivered exactly once per request
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from turbine.exceptions import JobError

SuccessCallback = Callable[[str], None]
"""Receives the accumulated stdout."""

FailureCallback = Callable[[str], None]
"""Receives the failure message (stderr, spawn or timeout description)."""


@dataclass(frozen=True)
class JobRequest:
    """An immutable unit of work for the JobScheduler."""

    argv: tuple[str, ...]
    cwd: Path | None = None
    on_success: SuccessCallback | None = field(default=None, compare=False)
    on_failure: FailureCallback | None = field(default=None, compare=False)
    label: str = ""
    """Free-form tag for logs (usually the package name)."""

    def __post_init__(self) -> None:
        # Accept lists from callers while keeping the request hashable.
        object.__setattr__(self, "argv", tuple(self.argv))

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)


@dataclass
class JobResult:
    """Outcome of a single subprocess run."""

    succeeded: bool
    output: str = ""
    message: str = ""
    exit_code: int | None = None
    error: JobError | None = None

    @classmethod
    def success(cls, output: str, exit_code: int = 0) -> "JobResult":
        return cls(succeeded=True, output=output, exit_code=exit_code)

    @classmethod
    def failure(cls, error: JobError, exit_code: int | None = None, output: str = "") -> "JobResult":
        return cls(
            succeeded=False,
            output=output,
            message=error.message,
            exit_code=exit_code,
            error=error,
        )
