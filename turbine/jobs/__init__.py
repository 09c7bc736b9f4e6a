"""Job subsystem — subprocess runner, FIFO scheduler and git command lines.

jobs/
  models.py     — JobRequest, JobResult
  runner.py     — SubprocessRunner (spawn + collect + exit code)
  scheduler.py  — JobScheduler (concurrency bound, FIFO queue, deadline)
  git.py        — clone / pull / rev-parse request builders
"""

from turbine.jobs.models import JobRequest, JobResult
from turbine.jobs.runner import SubprocessRunner
from turbine.jobs.scheduler import JobScheduler

__all__ = [
    "JobRequest",
    "JobResult",
    "JobScheduler",
    "SubprocessRunner",
]
