"""Shared pytest fixtures for the turbine test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from turbine.activation.dispatcher import LocalDispatcher
from turbine.activation.host import PythonHost
from turbine.config import Settings
from turbine.exceptions import SubprocessError
from turbine.jobs.models import JobResult
from turbine.manager import Turbine, configure
from turbine.storage import LocalStorage

REVISION = "0123456789abcdef0123456789abcdef01234567"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced Unix-seconds clock."""

    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class ScriptedRunner:
    """Stands in for SubprocessRunner; understands the three git commands.

    ``clone`` creates the target directory (failing clones leave it behind,
    as git does for a partial checkout), ``pull`` and ``rev-parse`` succeed
    unless told otherwise.  Clones of ``hang_urls`` create the directory and
    then never finish.  Every call is recorded.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], Path | None]] = []
        self.fail_urls: set[str] = set()
        self.hang_urls: set[str] = set()
        self.fail_pulls: set[str] = set()
        self.fail_revparse = False
        self.revision = REVISION
        self.active = 0
        self.peak = 0

    def commands(self, verb: str) -> list[tuple[str, ...]]:
        return [argv for argv, _ in self.calls if len(argv) > 1 and argv[1] == verb]

    async def run(self, argv: tuple[str, ...], cwd: Path | None = None) -> JobResult:
        self.calls.append((tuple(argv), cwd))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0)
            if len(argv) > 3 and argv[1] == "clone" and argv[-2] in self.hang_urls:
                Path(argv[-1]).mkdir(parents=True)
                await asyncio.sleep(3600)
            return self._respond(tuple(argv), cwd)
        finally:
            self.active -= 1

    def _respond(self, argv: tuple[str, ...], cwd: Path | None) -> JobResult:
        verb = argv[1]
        if verb == "clone":
            url, target = argv[-2], Path(argv[-1])
            target.mkdir(parents=True)
            if url in self.fail_urls:
                return JobResult.failure(
                    SubprocessError(argv, 128, f"fatal: repository '{url}' not found\n"),
                    exit_code=128,
                )
            return JobResult.success("")
        if verb == "pull":
            if cwd is not None and cwd.name in self.fail_pulls:
                return JobResult.failure(
                    SubprocessError(argv, 1, "fatal: Not possible to fast-forward, aborting.\n"),
                    exit_code=1,
                )
            return JobResult.success("Already up to date.\n")
        if verb == "rev-parse":
            if self.fail_revparse:
                return JobResult.failure(
                    SubprocessError(argv, 128, "fatal: not a git repository\n"), exit_code=128
                )
            return JobResult.success(self.revision + "\n")
        raise AssertionError(f"unexpected command {argv}")


# ---------------------------------------------------------------------------
# Settings / components
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def storage() -> LocalStorage:
    return LocalStorage()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings.from_options(
        {
            "root": str(tmp_path / "turbine"),
            "max_concurrent_jobs": 2,
            "logging": {"level": "debug", "format": "console"},
        }
    )


@pytest.fixture
def dispatcher() -> LocalDispatcher:
    return LocalDispatcher()


@pytest.fixture
def search_path() -> list[str]:
    return []


@pytest.fixture
def turbine(
    settings: Settings,
    runner: ScriptedRunner,
    clock: FakeClock,
    dispatcher: LocalDispatcher,
    search_path: list[str],
) -> Turbine:
    return configure(
        settings,
        runner=runner,
        dispatcher=dispatcher,
        host=PythonHost(dispatcher, search_path=search_path),
        clock=clock,
    )


@pytest.fixture
def install_dir(settings: Settings):
    """Create ``<plugins>/<name>`` as if the package had been cloned."""

    def _install(name: str) -> Path:
        path = settings.plugins_dir / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    return _install
