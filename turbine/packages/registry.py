"""Package registry — the single point of truth for registered packages.

The registry handles:
  - Registration (last write wins) and persistence of the spec table
  - Install / update orchestration through the JobScheduler
  - Revision metadata written back to the cache after each fetch
  - Removal of on-disk packages that are no longer registered

Persistence
-----------
The whole spec table is the unit of persistence: it is re-written under
``package_specs`` on every ``register()``.  Only the serialisable subset
(url, branch, lazy, triggers) survives a restart; ``config`` callbacks
exist only in the in-memory copy.

Cleaning trusts that table, so ``remove_untracked`` refuses to run when a
persisted table was found but could not be restored, and never removes a
directory whose cached spec failed to parse.

Failure scoping
---------------
Every failure is scoped to one package.  ``install_all`` / ``update_all``
always finish and always report a result for every package.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator, Mapping
from pathlib import Path
from typing import Any

from turbine.cache import SPECS_KEY, CacheStore, package_key
from turbine.clock import Clock, system_clock
from turbine.config import Settings
from turbine.exceptions import (
    CacheKeyError,
    InvalidSpecError,
    MissingSourceError,
    PackageNotFoundError,
    SpecTableUnavailableError,
)
from turbine.jobs import git
from turbine.jobs.scheduler import JobScheduler
from turbine.logging import get_logger
from turbine.packages.models import PackageResult, PackageSpec
from turbine.storage import Storage

log = get_logger(__name__)

ResultsCallback = Callable[[dict[str, PackageResult]], None]
RemovedCallback = Callable[[list[str]], None]

ALREADY_INSTALLED = "already installed"
INSTALLED = "installed"
UPDATED = "updated"


class PackageRegistry:
    """In-memory table of package name → PackageSpec, mirrored in the cache.

    Usage::

        registry = PackageRegistry(settings, storage, cache, scheduler)
        registry.load_cached()
        registry.register({"telescope": "https://github.com/nvim-telescope/telescope.nvim"})

        results = await registry.install_all()
        removed = await registry.remove_untracked()
    """

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        cache: CacheStore,
        scheduler: JobScheduler,
        clock: Clock = system_clock,
    ) -> None:
        self._settings = settings
        self._storage = storage
        self._cache = cache
        self._scheduler = scheduler
        self._clock = clock
        self._specs: dict[str, PackageSpec] = {}
        # Set when a persisted table was found but could not be read back;
        # cleared by the next explicit register().
        self._restore_failed = False
        self._unrestored: set[str] = set()

    # ---------------------------------------------------------------------------
    # Table access
    # ---------------------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[PackageSpec]:
        return iter(list(self._specs.values()))

    def names(self) -> list[str]:
        return list(self._specs)

    def get(self, name: str) -> PackageSpec:
        """Return the spec for *name*.

        Raises:
            PackageNotFoundError: No package with this name is registered.
        """
        try:
            return self._specs[name]
        except KeyError:
            raise PackageNotFoundError(name) from None

    def package_dir(self, name: str) -> Path:
        return self._settings.plugins_dir / name

    def is_installed(self, name: str) -> bool:
        return self._storage.directory_exists(self.package_dir(name))

    def metadata(self, name: str) -> dict[str, Any] | None:
        """Cached url / revision / timestamp for *name*, if still fresh."""
        try:
            value = self._cache.get(package_key(name))
        except CacheKeyError:
            return None
        return value if isinstance(value, dict) else None

    # ---------------------------------------------------------------------------
    # Registration
    # ---------------------------------------------------------------------------

    def load_cached(self) -> int:
        """Restore the spec table persisted by a previous process.

        Returns the number of specs restored.  Entries that no longer parse
        are skipped, and their directories are protected from
        ``remove_untracked`` until the table is registered again.  A table
        that is present but expired or corrupt blocks ``remove_untracked``
        altogether.
        """
        present = self._cache.has_entry(SPECS_KEY)
        cached = self._cache.get(SPECS_KEY)
        if not isinstance(cached, dict):
            if present:
                self._restore_failed = True
                log.warning("cached_specs_unavailable", key=SPECS_KEY)
            return 0

        restored = 0
        for name, data in cached.items():
            try:
                if not isinstance(data, Mapping):
                    raise InvalidSpecError(str(name), "not a mapping")
                self._specs[name] = PackageSpec.from_dict(name, data)
            except InvalidSpecError as exc:
                log.warning("cached_spec_skipped", package=name, reason=exc.context["reason"])
                self._unrestored.add(str(name))
                continue
            restored += 1

        log.debug("cached_specs_restored", count=restored)
        return restored

    def register(self, packages: Mapping[str, Any]) -> list[PackageSpec]:
        """Upsert every ``name -> spec`` pair, then persist the whole table.

        All values are validated before any is stored, so a bad entry leaves
        the table untouched.

        Raises:
            InvalidSpecError: a value cannot be turned into a PackageSpec.
        """
        specs = [PackageSpec.from_value(name, value) for name, value in packages.items()]
        for spec in specs:
            if spec.name in self._specs:
                log.debug("package_reregistered", package=spec.name)
            self._specs[spec.name] = spec
        self._restore_failed = False
        self._unrestored.clear()
        self._persist()
        log.info("packages_registered", count=len(specs), total=len(self._specs))
        return specs

    def _persist(self) -> None:
        table = {name: spec.to_dict() for name, spec in self._specs.items()}
        self._cache.put(SPECS_KEY, table)

    # ---------------------------------------------------------------------------
    # Single-package operations
    # ---------------------------------------------------------------------------

    async def install_one(self, name: str) -> PackageResult:
        """Clone *name* unless its directory already exists.

        Raises:
            PackageNotFoundError: *name* is not registered.
        """
        spec = self.get(name)
        path = self.package_dir(name)

        if self._storage.directory_exists(path):
            return PackageResult(True, ALREADY_INSTALLED)

        if not spec.url:
            err = MissingSourceError(name)
            log.error("package_install_failed", package=name, error=err.message)
            return PackageResult(False, err.message)

        self._storage.make_directory(self._settings.plugins_dir)
        log.info("package_installing", package=name, url=spec.url, branch=spec.branch)

        result = await self._scheduler.submit(git.clone(spec.url, path, spec.branch, label=name))
        if not result.succeeded:
            log.error("package_install_failed", package=name, error=result.message)
            # A partial checkout would otherwise read as "already installed".
            await asyncio.to_thread(self._storage.delete, path)
            return PackageResult(False, result.message)

        await self._record_revision(spec, "installed_at")
        log.info("package_installed", package=name)
        return PackageResult(True, INSTALLED)

    async def update_one(self, name: str) -> PackageResult:
        """Fast-forward *name*, or install it when it is not on disk yet.

        Raises:
            PackageNotFoundError: *name* is not registered.
        """
        spec = self.get(name)
        path = self.package_dir(name)

        if not self._storage.directory_exists(path):
            return await self.install_one(name)

        log.info("package_updating", package=name)
        result = await self._scheduler.submit(git.pull(path, label=name))
        if not result.succeeded:
            log.error("package_update_failed", package=name, error=result.message)
            return PackageResult(False, result.message)

        await self._record_revision(spec, "updated_at")
        log.info("package_updated", package=name)
        return PackageResult(True, UPDATED)

    async def _record_revision(self, spec: PackageSpec, stamp_field: str) -> None:
        """Best effort: a failed rev-parse only leaves the revision empty."""
        path = self.package_dir(spec.name)
        result = await self._scheduler.submit(git.current_revision(path, label=spec.name))
        revision: str | None = None
        if result.succeeded:
            revision = result.output.strip() or None
        else:
            log.warning("revision_lookup_failed", package=spec.name, error=result.message)

        try:
            self._cache.put(
                package_key(spec.name),
                {"url": spec.url, "revision": revision, stamp_field: self._clock()},
            )
        except CacheKeyError as exc:
            log.warning("package_metadata_not_cached", package=spec.name, error=exc.message)

    # ---------------------------------------------------------------------------
    # Bulk operations
    # ---------------------------------------------------------------------------

    async def install_all(self, on_done: ResultsCallback | None = None) -> dict[str, PackageResult]:
        """Install every registered package; ``on_done`` fires exactly once."""
        return await self._run_all(self.install_one, "install", on_done)

    async def update_all(self, on_done: ResultsCallback | None = None) -> dict[str, PackageResult]:
        """Update every registered package; ``on_done`` fires exactly once."""
        return await self._run_all(self.update_one, "update", on_done)

    async def _run_all(
        self,
        operation: Callable[[str], Awaitable[PackageResult]],
        verb: str,
        on_done: ResultsCallback | None,
    ) -> dict[str, PackageResult]:
        names = self.names()
        total = len(names)
        results: dict[str, PackageResult] = {}

        if total == 0:
            log.info(f"nothing_to_{verb}")
            _notify(on_done, results)
            return results

        completed = 0

        async def one(name: str) -> None:
            nonlocal completed
            try:
                result = await operation(name)
            except Exception as exc:
                log.error(f"package_{verb}_crashed", package=name, error=str(exc))
                result = PackageResult(False, str(exc))
            results[name] = result
            completed += 1
            if completed == total:
                failed = sum(1 for r in results.values() if not r.succeeded)
                log.info(f"{verb}_complete", completed=completed, total=total, failed=failed)
                _notify(on_done, results)

        await asyncio.gather(*(one(name) for name in names))
        return results

    async def remove_untracked(self, on_done: RemovedCallback | None = None) -> list[str]:
        """Delete on-disk package directories that are not registered.

        ``on_done`` always fires, with an empty list when nothing was removed.
        Directories of cached specs that failed to parse are kept.

        Raises:
            SpecTableUnavailableError: the persisted table was present but
                expired or unreadable, and nothing has been registered since.
        """
        if self._restore_failed:
            raise SpecTableUnavailableError("entry expired or unreadable")

        on_disk = self._storage.list_directory(self._settings.plugins_dir)
        removed: list[str] = []
        for name in on_disk:
            if name in self._specs:
                continue
            if name in self._unrestored:
                log.warning("package_kept_unrestored", package=name)
                continue
            removed.append(name)

        if not removed:
            log.info("nothing_to_clean")

        for name in removed:
            await asyncio.to_thread(self._storage.delete, self.package_dir(name))
            try:
                self._cache.delete(package_key(name))
            except CacheKeyError as exc:
                log.debug("package_metadata_not_cached", package=name, error=exc.message)
            log.info("package_removed", package=name)

        _notify(on_done, removed)
        return removed


def _notify(callback: Callable[[Any], None] | None, payload: Any) -> None:
    if callback is None:
        return
    try:
        callback(payload)
    except Exception as exc:
        log.error("completion_callback_error", error=str(exc))
