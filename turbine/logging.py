"""Logging setup for turbine.

Every module logs through ``get_logger(__name__)`` with snake_case event
names and keyword fields (``package=``, ``url=``, ``command=``).  Records
emitted while a scheduler job runs also carry ``job_id`` and the package
the job belongs to; the scheduler binds them with :func:`job_context`.

Rendering happens once, in the stdlib handler, so records from third-party
loggers get the same timestamp / level fields as turbine's own.  Logs go
to stderr because stdout belongs to the CLI's tables and ``--json`` output.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from turbine.config import LoggingConfig


@contextmanager
def job_context(job_id: str, package: str | None = None) -> Iterator[None]:
    """Attach *job_id* (and *package*) to every record logged inside the block.

    The fields live in the current context only, so concurrent jobs running
    as separate tasks never see each other's values, and they are unbound
    again when the block exits.
    """
    fields: dict[str, Any] = {"job_id": job_id}
    if package:
        fields["package"] = package
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def configure_logging(config: LoggingConfig) -> None:
    """Install structlog processors and stdlib handlers for *config*.

    Safe to call more than once; each call replaces the root handlers.
    """
    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(config.level.upper())

    # Subprocess transport chatter at debug level drowns out job records.
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
