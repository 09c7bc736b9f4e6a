"""Git command lines used by the package registry.

Only argv construction lives here; running them is the scheduler's job.
"""

from __future__ import annotations

from pathlib import Path

from turbine.jobs.models import FailureCallback, JobRequest, SuccessCallback

GIT = "git"

# Branches that a shallow clone checks out anyway.
DEFAULT_BRANCHES = frozenset({"main", "master"})


def clone(
    url: str,
    path: Path,
    branch: str | None = None,
    *,
    label: str = "",
    on_success: SuccessCallback | None = None,
    on_failure: FailureCallback | None = None,
) -> JobRequest:
    """Shallow clone of *url* into *path*."""
    argv = [GIT, "clone", "--depth=1"]
    if branch and branch not in DEFAULT_BRANCHES:
        argv += ["--branch", branch]
    argv += [url, str(path)]
    return JobRequest(tuple(argv), None, on_success, on_failure, label)


def pull(
    path: Path,
    *,
    label: str = "",
    on_success: SuccessCallback | None = None,
    on_failure: FailureCallback | None = None,
) -> JobRequest:
    """Fast-forward-only pull inside *path*."""
    return JobRequest((GIT, "pull", "--ff-only"), path, on_success, on_failure, label)


def current_revision(path: Path, *, label: str = "") -> JobRequest:
    """``git rev-parse HEAD`` inside *path*; the caller strips the output."""
    return JobRequest((GIT, "rev-parse", "HEAD"), path, label=label)
