"""Host runtime — makes an installed package's code live in this process.

``PythonHost`` treats a package as a directory of Python code:

    <package>/
        <importable modules...>      made importable via sys.path
        plugin/**/*.py               executed once, in sorted order, on activation

Plugin files receive two globals: ``turbine_package`` (the package name)
and ``turbine_dispatcher`` (the dispatcher, so a plugin can define the
commands and key handlers its triggers stand in for).
"""

from __future__ import annotations

import runpy
import sys
from abc import ABC, abstractmethod
from pathlib import Path

from turbine.activation.dispatcher import TriggerDispatcher

PLUGIN_DIR = "plugin"


class HostRuntime(ABC):
    """What the activation engine needs from the host process."""

    @abstractmethod
    def extend_search_path(self, path: Path) -> None:
        """Make code under *path* resolvable by the host."""

    @abstractmethod
    def source_files(self, path: Path) -> list[Path]:
        """Files to execute when the package at *path* activates."""

    @abstractmethod
    def load_source(self, file: Path, package: str) -> None:
        """Execute one source file on behalf of *package*."""


class PythonHost(HostRuntime):
    def __init__(
        self,
        dispatcher: TriggerDispatcher | None = None,
        search_path: list[str] | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._search_path = sys.path if search_path is None else search_path

    def extend_search_path(self, path: Path) -> None:
        entry = str(path)
        if entry not in self._search_path:
            self._search_path.insert(0, entry)

    def source_files(self, path: Path) -> list[Path]:
        plugin_dir = path / PLUGIN_DIR
        if not plugin_dir.is_dir():
            return []
        return sorted(p for p in plugin_dir.rglob("*.py") if p.is_file())

    def load_source(self, file: Path, package: str) -> None:
        runpy.run_path(
            str(file),
            init_globals={
                "turbine_package": package,
                "turbine_dispatcher": self._dispatcher,
            },
            run_name=f"turbine_plugin_{package}",
        )
