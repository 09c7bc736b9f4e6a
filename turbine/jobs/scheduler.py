"""Bounded-concurrency job scheduler.

The scheduler sits between the package registry (which decides *what* to
run) and the SubprocessRunner (which runs it).  Its responsibilities:

1. **Concurrency limit** — at most ``max_concurrent`` subprocesses run at
   once.  Additional requests wait in a strict FIFO queue.

2. **Deadline** — every run gets ``timeout_ms`` to finish; expiry turns
   into a failed result and a best-effort kill of the process.

3. **Exactly-once delivery** — each request gets exactly one of its
   continuations and its future is resolved exactly once.

Completion ordering
-------------------
When a job finishes the scheduler first decrements the running count and
starts the oldest queued request, and only then delivers the finished
job's continuation.  Queue throughput therefore never depends on what the
continuation does, and a continuation that submits more work always sees
a consistent count.  All of this happens on the loop thread between
suspension points, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from dataclasses import dataclass, field

from turbine.exceptions import ConfigurationError, JobTimeoutError, SpawnError
from turbine.jobs.models import JobRequest, JobResult
from turbine.jobs.runner import SubprocessRunner
from turbine.logging import get_logger, job_context

log = get_logger(__name__)


@dataclass
class _Ticket:
    """Scheduler-owned envelope around a submitted request."""

    job_id: str
    request: JobRequest
    future: asyncio.Future[JobResult]
    delivered: bool = field(default=False)


class JobScheduler:
    """FIFO scheduler with a fixed concurrency bound.

    Usage::

        scheduler = JobScheduler(SubprocessRunner(), max_concurrent=10, timeout_ms=60_000)
        result = await scheduler.submit(JobRequest(("git", "pull", "--ff-only"), cwd=path))
        if not result.succeeded:
            print(result.message)

        await scheduler.drain()
    """

    def __init__(
        self,
        runner: SubprocessRunner,
        max_concurrent: int = 10,
        timeout_ms: int | None = None,
    ) -> None:
        if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent < 1:
            raise ConfigurationError(
                f"max_concurrent_jobs must be a positive integer, got {max_concurrent!r}"
            )
        if timeout_ms is not None and timeout_ms < 1:
            raise ConfigurationError(f"git_timeout must be positive, got {timeout_ms!r}")

        self._runner = runner
        self._max_concurrent = max_concurrent
        self._timeout_ms = timeout_ms

        self._running = 0
        self._peak = 0
        self._queue: deque[_Ticket] = deque()
        self._tasks: set[asyncio.Task[None]] = set()
        self._ids = itertools.count(1)
        self._idle: asyncio.Event | None = None

    # ---------------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------------

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def peak_running(self) -> int:
        """Highest number of simultaneously running jobs seen so far."""
        return self._peak

    # ---------------------------------------------------------------------------
    # Public interface
    # ---------------------------------------------------------------------------

    def submit(self, request: JobRequest) -> asyncio.Future[JobResult]:
        """Start *request* now if a slot is free, otherwise queue it.

        Must be called from a running event loop.  The returned future
        resolves with the JobResult after the request's continuation ran.
        """
        loop = asyncio.get_running_loop()
        ticket = _Ticket(
            job_id=f"job-{next(self._ids)}",
            request=request,
            future=loop.create_future(),
        )
        if self._running < self._max_concurrent:
            self._start(ticket)
        else:
            self._queue.append(ticket)
            log.debug(
                "job_queued",
                job_id=ticket.job_id,
                command=request.command_line,
                queue_depth=len(self._queue),
            )
        return ticket.future

    async def run(self, request: JobRequest) -> JobResult:
        """Submit *request* and wait for its result."""
        return await self.submit(request)

    async def drain(self) -> None:
        """Wait until nothing is running or queued."""
        while self._running or self._queue:
            if self._idle is None:
                self._idle = asyncio.Event()
            await self._idle.wait()

    # ---------------------------------------------------------------------------
    # Internal
    # ---------------------------------------------------------------------------

    def _start(self, ticket: _Ticket) -> None:
        self._running += 1
        self._peak = max(self._peak, self._running)
        task = asyncio.create_task(self._execute(ticket), name=ticket.job_id)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, ticket: _Ticket) -> None:
        request = ticket.request
        with job_context(ticket.job_id, package=request.label or None):
            log.debug("job_started", command=request.command_line, running=self._running)
            try:
                result = await self._run_with_deadline(request)
            except asyncio.CancelledError:
                # Loop shutdown: release the slot and abandon the request.
                if not ticket.delivered:
                    ticket.delivered = True
                    self._running -= 1
                    ticket.future.cancel()
                raise
            except Exception as exc:
                log.error("job_runner_crashed", command=request.command_line, error=str(exc))
                result = JobResult.failure(SpawnError(request.argv, f"runner error: {exc}"))

            self._finish(ticket, result)

    async def _run_with_deadline(self, request: JobRequest) -> JobResult:
        """Run *request*; only an expired deadline of our own becomes a timeout.

        A ``TimeoutError`` raised by the runner itself propagates like any
        other runner exception.
        """
        if self._timeout_ms is None:
            return await self._runner.run(request.argv, request.cwd)

        run = asyncio.ensure_future(self._runner.run(request.argv, request.cwd))
        try:
            done, _ = await asyncio.wait({run}, timeout=self._timeout_ms / 1000)
        except asyncio.CancelledError:
            run.cancel()
            raise
        if run in done:
            return run.result()

        run.cancel()
        try:
            await run
        except asyncio.CancelledError:
            pass
        log.warning("job_timed_out", command=request.command_line, timeout_ms=self._timeout_ms)
        return JobResult.failure(JobTimeoutError(request.argv, self._timeout_ms))

    def _finish(self, ticket: _Ticket, result: JobResult) -> None:
        if ticket.delivered:
            return
        ticket.delivered = True

        self._running -= 1
        if self._queue and self._running < self._max_concurrent:
            self._start(self._queue.popleft())

        self._deliver(ticket, result)

        if not self._running and not self._queue and self._idle is not None:
            self._idle.set()
            self._idle = None

    def _deliver(self, ticket: _Ticket, result: JobResult) -> None:
        request = ticket.request
        if result.succeeded:
            log.debug("job_succeeded", job_id=ticket.job_id, command=request.command_line)
            callback, payload = request.on_success, result.output
        else:
            log.debug(
                "job_failed",
                job_id=ticket.job_id,
                command=request.command_line,
                error=result.message,
            )
            callback, payload = request.on_failure, result.message

        if callback is not None:
            try:
                callback(payload)
            except Exception as exc:
                log.error("job_callback_error", job_id=ticket.job_id, error=str(exc))

        if not ticket.future.done():
            ticket.future.set_result(result)
