"""Subprocess runner — spawn, collect output, report exit code.

Notes:
  - Commands are always exec'd from an argv list, never through a shell.
  - Spawn failures are returned as a failed ``JobResult``, never raised.
  - The runner has no timeout of its own.  The scheduler wraps ``run()`` in
    a deadline; when that cancels the coroutine the process tree is killed
    on a best-effort basis and the cancellation propagates immediately.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import psutil

from turbine.exceptions import SpawnError, SubprocessError
from turbine.jobs.models import JobResult
from turbine.logging import get_logger

log = get_logger(__name__)


class SubprocessRunner:
    """Runs one external command on the current event loop."""

    async def run(self, argv: tuple[str, ...], cwd: Path | None = None) -> JobResult:
        if not argv:
            return JobResult.failure(SpawnError(argv, "empty command"))

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
            )
        except FileNotFoundError as exc:
            missing = exc.filename if exc.filename and exc.filename != argv[0] else None
            reason = (
                f"working directory not found: {missing}" if missing else "executable not found"
            )
            return JobResult.failure(SpawnError(argv, reason))
        except PermissionError:
            return JobResult.failure(SpawnError(argv, "permission denied"))
        except OSError as exc:
            return JobResult.failure(SpawnError(argv, exc.strerror or str(exc)))

        log.debug("subprocess_spawned", pid=proc.pid, command=" ".join(argv))

        try:
            stdout_bytes, stderr_bytes = await proc.communicate()
        except asyncio.CancelledError:
            _terminate(proc.pid)
            raise

        stdout = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
        code = proc.returncode if proc.returncode is not None else -1

        if code == 0:
            return JobResult.success(stdout, exit_code=0)
        return JobResult.failure(SubprocessError(argv, code, stderr), exit_code=code, output=stdout)


def _terminate(pid: int) -> None:
    """Kill *pid* and its children without waiting for them to be reaped."""
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return
    except psutil.AccessDenied as exc:
        log.warning("subprocess_terminate_denied", pid=pid, error=str(exc))
        return

    for proc in (*children, parent):
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    log.debug("subprocess_terminated", pid=pid, children=len(children))
