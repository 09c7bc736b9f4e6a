"""Turbine — the context object that wires every component together.

There are no hidden globals: ``configure()`` builds one ``Turbine`` holding
the settings, storage, cache, scheduler, registry and activation engine,
and every component receives its collaborators through its constructor.

Typical embedding::

    turbine = configure({"root": "~/.local/share/myapp", "max_concurrent_jobs": 4})
    turbine.register({
        "telescope": {"url": "https://github.com/nvim-telescope/telescope.nvim",
                      "cmd": "Telescope"},
        "theme": {"url": "https://github.com/folke/tokyonight.nvim", "lazy": False},
    })
    await turbine.start()          # optional auto-sync, then activate_all()
    turbine.status()
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from turbine.activation.dispatcher import LocalDispatcher, TriggerDispatcher
from turbine.activation.engine import ActivationEngine, ActivationState
from turbine.activation.host import HostRuntime, PythonHost
from turbine.cache import CacheStore
from turbine.clock import Clock, system_clock
from turbine.config import Settings
from turbine.jobs.runner import SubprocessRunner
from turbine.jobs.scheduler import JobScheduler
from turbine.logging import get_logger
from turbine.packages.models import PackageResult, PackageSpec
from turbine.packages.registry import PackageRegistry
from turbine.storage import LocalStorage, Storage

log = get_logger(__name__)

ResultMap = dict[str, dict[str, Any]]


class Turbine:
    """Package manager facade.  Build it with :func:`configure`."""

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        cache: CacheStore,
        scheduler: JobScheduler,
        registry: PackageRegistry,
        engine: ActivationEngine,
        dispatcher: TriggerDispatcher,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.cache = cache
        self.scheduler = scheduler
        self.registry = registry
        self.engine = engine
        self.dispatcher = dispatcher

    # ---------------------------------------------------------------------------
    # Registration
    # ---------------------------------------------------------------------------

    def register(self, packages: Mapping[str, Any]) -> list[PackageSpec]:
        return self.registry.register(packages)

    # ---------------------------------------------------------------------------
    # Install / update / clean
    # ---------------------------------------------------------------------------

    async def install_all(self, callback: Callable[[ResultMap], None] | None = None) -> ResultMap:
        results = await self.registry.install_all(_as_plain(callback))
        return _plain(results)

    async def update_all(self, callback: Callable[[ResultMap], None] | None = None) -> ResultMap:
        results = await self.registry.update_all(_as_plain(callback))
        return _plain(results)

    async def remove_untracked(self, callback: Callable[[list[str]], None] | None = None) -> list[str]:
        return await self.registry.remove_untracked(callback)

    async def drain(self) -> None:
        """Wait for every submitted job to finish."""
        await self.scheduler.drain()

    # ---------------------------------------------------------------------------
    # Activation
    # ---------------------------------------------------------------------------

    def activate_all(self) -> dict[str, ActivationState]:
        return self.engine.activate_all()

    def activate(self, name: str) -> bool:
        return self.engine.activate(name)

    async def start(self) -> dict[str, ActivationState]:
        """Startup sequence: ``update_all()`` when auto_sync is on, then activate."""
        if self.settings.auto_sync:
            log.info("auto_sync_started", packages=len(self.registry))
            await self.update_all()
        return self.activate_all()

    # ---------------------------------------------------------------------------
    # Status
    # ---------------------------------------------------------------------------

    def status(self) -> dict[str, dict[str, Any]]:
        """Last-known state of every registered package."""
        report: dict[str, dict[str, Any]] = {}
        for spec in self.registry:
            meta = self.registry.metadata(spec.name) or {}
            report[spec.name] = {
                "installed": self.registry.is_installed(spec.name),
                "activated": self.engine.is_activated(spec.name),
                "source_url": spec.url,
                "resolved_revision": meta.get("revision"),
                "lazy": spec.is_lazy(self.settings.lazy_load),
            }
        return report


def _plain(results: dict[str, PackageResult]) -> ResultMap:
    return {name: result.to_dict() for name, result in results.items()}


def _as_plain(
    callback: Callable[[ResultMap], None] | None,
) -> Callable[[dict[str, PackageResult]], None] | None:
    if callback is None:
        return None
    return lambda results: callback(_plain(results))


def configure(
    options: Mapping[str, Any] | Settings | None = None,
    *,
    storage: Storage | None = None,
    runner: SubprocessRunner | None = None,
    dispatcher: TriggerDispatcher | None = None,
    host: HostRuntime | None = None,
    clock: Clock | None = None,
) -> Turbine:
    """Validate *options* and build a ready-to-use :class:`Turbine`.

    The root directory is created and the spec table persisted by a
    previous process is restored.

    Raises:
        ConfigurationError: *options* are malformed or out of range.
    """
    settings = options if isinstance(options, Settings) else Settings.from_options(dict(options or {}))
    storage = storage or LocalStorage()
    clock = clock or system_clock
    dispatcher = dispatcher or LocalDispatcher()
    host = host or PythonHost(dispatcher)

    storage.make_directory(settings.root)

    cache = CacheStore(storage, settings.cache_dir, settings.cache_ttl, clock)
    scheduler = JobScheduler(
        runner or SubprocessRunner(),
        max_concurrent=settings.max_concurrent_jobs,
        timeout_ms=settings.git_timeout,
    )
    registry = PackageRegistry(settings, storage, cache, scheduler, clock)
    engine = ActivationEngine(registry, dispatcher, host, lazy_load=settings.lazy_load)

    restored = registry.load_cached()
    log.debug("turbine_configured", root=str(settings.root), restored_specs=restored)
    return Turbine(settings, storage, cache, scheduler, registry, engine, dispatcher)
