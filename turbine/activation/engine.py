"""Activation engine — decides when a package's code goes live.

State machine (per package)::

    REGISTERED ──activate_all(), eager──────────────► ACTIVATED
        │                                                 ▲
        └──activate_all(), has triggers──► ARMED ──any trigger fires──┘

ACTIVATED is terminal.  ``activate()`` checks and sets it in the same
tick, before any package code runs, so overlapping triggers (or a plugin
that fires another trigger while loading) can never activate twice.  The
first caller to reach ``activate()`` wins; which trigger that is when two
fire in the same input is unspecified.

A package activates eagerly when ``lazy`` is explicitly False, when lazy
loading is globally disabled, or when it declares no trigger at all.
Trigger declarations are ignored in the first two cases.
"""

from __future__ import annotations

from enum import Enum

from turbine.activation.dispatcher import Registration, TriggerDispatcher
from turbine.activation.host import HostRuntime
from turbine.exceptions import ActivationError
from turbine.logging import get_logger
from turbine.packages.models import PackageSpec, TriggerKind
from turbine.packages.registry import PackageRegistry

log = get_logger(__name__)

# Pattern used for event triggers: any subject.
ANY = "*"


class ActivationState(str, Enum):
    REGISTERED = "registered"
    ARMED = "armed"
    ACTIVATED = "activated"


class ActivationEngine:
    """Arms deferred triggers and activates packages exactly once.

    Usage::

        engine = ActivationEngine(registry, dispatcher, PythonHost(dispatcher))
        engine.activate_all()              # eager packages load, the rest arm
        dispatcher.run_command("Telescope")
        engine.is_activated("telescope")   # -> True
    """

    def __init__(
        self,
        registry: PackageRegistry,
        dispatcher: TriggerDispatcher,
        host: HostRuntime,
        lazy_load: bool = True,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._host = host
        self._lazy_load = lazy_load

        self._states: dict[str, ActivationState] = {}
        self._registrations: dict[str, list[Registration]] = {}
        self._errors: dict[str, list[ActivationError]] = {}

    # ---------------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------------

    def state(self, name: str) -> ActivationState:
        return self._states.get(name, ActivationState.REGISTERED)

    def is_activated(self, name: str) -> bool:
        return self._states.get(name) is ActivationState.ACTIVATED

    def activated(self) -> list[str]:
        return [n for n, s in self._states.items() if s is ActivationState.ACTIVATED]

    def registrations(self, name: str) -> list[Registration]:
        """Outstanding trigger registrations for *name*."""
        return [r for r in self._registrations.get(name, ()) if r.active]

    def errors(self, name: str) -> list[ActivationError]:
        return list(self._errors.get(name, ()))

    def should_activate_now(self, spec: PackageSpec) -> bool:
        return spec.is_eager(self._lazy_load)

    # ---------------------------------------------------------------------------
    # Bulk pass
    # ---------------------------------------------------------------------------

    def activate_all(self) -> dict[str, ActivationState]:
        """Activate eager packages and arm triggers for the rest.

        Packages that are already armed or activated are left alone, so the
        pass can be repeated after new registrations.
        """
        for spec in self._registry:
            if self.state(spec.name) is not ActivationState.REGISTERED:
                continue
            if self.should_activate_now(spec):
                self.activate(spec.name)
            else:
                self.arm(spec.name)

        states = {name: self.state(name) for name in self._registry.names()}
        log.info(
            "activation_pass_complete",
            activated=sum(1 for s in states.values() if s is ActivationState.ACTIVATED),
            armed=sum(1 for s in states.values() if s is ActivationState.ARMED),
        )
        return states

    def arm(self, name: str) -> int:
        """Register one trigger per declared (kind, value).  Returns the count."""
        spec = self._registry.get(name)
        if self.state(name) is not ActivationState.REGISTERED:
            return 0

        registrations: list[Registration] = []
        for kind, values in spec.triggers.items():
            for value in values:
                registrations.append(self._register(name, kind, value))

        self._registrations[name] = registrations
        self._states[name] = ActivationState.ARMED
        log.debug("triggers_armed", package=name, count=len(registrations))
        return len(registrations)

    def _register(self, name: str, kind: TriggerKind, value: str) -> Registration:
        def fire() -> None:
            log.debug("trigger_fired", package=name, kind=kind.value, value=value)
            self.activate(name)

        def fire_key() -> bool:
            fire()
            return True

        if kind is TriggerKind.EVENT:
            return self._dispatcher.on_event(value, ANY, fire)
        if kind is TriggerKind.COMMAND:
            return self._dispatcher.on_command(value, fire)
        if kind is TriggerKind.FILETYPE:
            return self._dispatcher.on_filetype((value,), fire)
        return self._dispatcher.on_keypress(value, fire_key)

    # ---------------------------------------------------------------------------
    # Activation
    # ---------------------------------------------------------------------------

    def activate(self, name: str) -> bool:
        """Make *name* live.  Returns True only for the call that activated it.

        A package that is not installed is skipped silently; its armed
        triggers stay armed.

        Raises:
            PackageNotFoundError: *name* is not registered.
        """
        if self._states.get(name) is ActivationState.ACTIVATED:
            return False

        spec = self._registry.get(name)
        if not self._registry.is_installed(name):
            log.debug("activation_skipped", package=name, reason="not installed")
            return False

        # Check and set in one tick: everything below may re-enter.
        self._states[name] = ActivationState.ACTIVATED
        for registration in self._registrations.pop(name, ()):
            registration.revoke()

        self._load(spec)
        log.info("package_activated", package=name, errors=len(self._errors.get(name, ())))
        return True

    def _load(self, spec: PackageSpec) -> None:
        path = self._registry.package_dir(spec.name)

        try:
            self._host.extend_search_path(path)
            files = self._host.source_files(path)
        except Exception as exc:
            self._record(spec.name, "search path", exc)
            files = []

        for file in files:
            try:
                self._host.load_source(file, spec.name)
            except Exception as exc:
                self._record(spec.name, f"source {file.name}", exc)

        if spec.config is not None:
            try:
                spec.config()
            except Exception as exc:
                self._record(spec.name, "config", exc)

    def _record(self, name: str, stage: str, exc: Exception) -> None:
        err = ActivationError(name, stage, exc)
        self._errors.setdefault(name, []).append(err)
        log.error("activation_error", package=name, stage=stage, error=str(exc))
