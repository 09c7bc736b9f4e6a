"""Unit tests — logging setup and job-scoped context."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog

from turbine.config import LoggingConfig
from turbine.logging import configure_logging, get_logger, job_context


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.mark.unit
class TestJobContext:
    def test_binds_and_unbinds(self) -> None:
        with job_context("job-7", package="telescope"):
            assert structlog.contextvars.get_contextvars() == {
                "job_id": "job-7",
                "package": "telescope",
            }
        assert structlog.contextvars.get_contextvars() == {}

    def test_package_optional(self) -> None:
        with job_context("job-8"):
            assert structlog.contextvars.get_contextvars() == {"job_id": "job-8"}


@pytest.mark.unit
class TestConfigureLogging:
    def test_json_file_records_carry_job_fields(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "turbine.log"
        configure_logging(LoggingConfig(level="info", format="json", file=log_file))
        log = get_logger("turbine.tests.logging")

        with job_context("job-1", package="alpha"):
            log.info("package_installed", revision="abc123")
        log.debug("filtered_out")

        lines = log_file.read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["event"] == "package_installed"
        assert record["job_id"] == "job-1"
        assert record["package"] == "alpha"
        assert record["level"] == "info"
        assert record["logger"] == "turbine.tests.logging"
        assert "timestamp" in record

    def test_level_applied_to_root(self) -> None:
        configure_logging(LoggingConfig(level="warning"))
        assert logging.getLogger().level == logging.WARNING
        assert len(logging.getLogger().handlers) == 1
