"""Trigger dispatchers — where deferred-activation triggers are armed.

The activation engine never talks to the host's UI primitives directly.
It asks a ``TriggerDispatcher`` to arm a one-shot callback for a trigger
and gets back a ``Registration`` it can revoke.  When any trigger of a
package fires, the engine revokes all its siblings at once, so separate
dispatch tables (events, commands, filetypes, keys) stand down together.

``LocalDispatcher`` is the in-process implementation used by the CLI,
embedders without an editor, and the test suite.  It also owns the real
command and key handlers that activated packages define, so a trigger
stub can re-invoke the command (or replay the key) once the package that
provides it has been loaded.
"""

from __future__ import annotations

import fnmatch
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from turbine.logging import get_logger
from turbine.packages.models import TriggerKind

log = get_logger(__name__)

TriggerCallback = Callable[[], None]
KeyCallback = Callable[[], bool]
"""Returns True when the original key press should be re-dispatched."""

CommandHandler = Callable[..., object]
KeyHandler = Callable[[], object]


class Registration:
    """Revocable handle for one armed trigger."""

    def __init__(
        self,
        kind: TriggerKind,
        value: str,
        on_revoke: Callable[[], None] | None = None,
    ) -> None:
        self.kind = kind
        self.value = value
        self._on_revoke = on_revoke
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def revoke(self) -> None:
        """Disarm the trigger.  Idempotent."""
        if not self._active:
            return
        self._active = False
        if self._on_revoke is not None:
            self._on_revoke()

    def __repr__(self) -> str:
        state = "active" if self._active else "revoked"
        return f"Registration({self.kind.value}={self.value!r}, {state})"


class TriggerDispatcher(ABC):
    """Host-side trigger registration contract."""

    @abstractmethod
    def on_event(self, name: str, pattern: str, callback: TriggerCallback) -> Registration:
        """Fire *callback* once, the first time event *name* matches *pattern*."""

    @abstractmethod
    def on_command(self, name: str, callback: TriggerCallback) -> Registration:
        """Fire *callback* once, the first time command *name* is invoked."""

    @abstractmethod
    def on_filetype(self, filetypes: tuple[str, ...], callback: TriggerCallback) -> Registration:
        """Fire *callback* once, the first time a buffer of one of *filetypes* opens."""

    @abstractmethod
    def on_keypress(self, key: str, callback: KeyCallback) -> Registration:
        """Fire *callback* once, the first time *key* is pressed."""


# ---------------------------------------------------------------------------
# LocalDispatcher
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class _Armed:
    registration: Registration
    callback: Callable[[], object]
    pattern: str = "*"
    filetypes: frozenset[str] = frozenset()


class LocalDispatcher(TriggerDispatcher):
    """In-process dispatcher with explicit fire methods.

    Usage::

        dispatcher = LocalDispatcher()
        reg = dispatcher.on_command("Telescope", lambda: engine.activate("telescope"))

        dispatcher.run_command("Telescope")   # activates, then runs the real command
        reg.active                            # -> False (one-shot)
    """

    def __init__(self) -> None:
        self._events: dict[str, list[_Armed]] = {}
        self._filetypes: list[_Armed] = []
        self._command_stubs: dict[str, _Armed] = {}
        self._key_stubs: dict[str, _Armed] = {}
        self._commands: dict[str, CommandHandler] = {}
        self._keymaps: dict[str, KeyHandler] = {}

    # ---------------------------------------------------------------------------
    # TriggerDispatcher
    # ---------------------------------------------------------------------------

    def on_event(self, name: str, pattern: str, callback: TriggerCallback) -> Registration:
        bucket = self._events.setdefault(name, [])
        registration = Registration(
            TriggerKind.EVENT, name, on_revoke=lambda: _discard(bucket, registration)
        )
        bucket.append(_Armed(registration, callback, pattern=pattern))
        return registration

    def on_command(self, name: str, callback: TriggerCallback) -> Registration:
        previous = self._command_stubs.get(name)
        if previous is not None:
            log.debug("command_stub_replaced", command=name)
        registration = Registration(
            TriggerKind.COMMAND, name, on_revoke=lambda: _pop_if(self._command_stubs, name, registration)
        )
        self._command_stubs[name] = _Armed(registration, callback)
        return registration

    def on_filetype(self, filetypes: tuple[str, ...], callback: TriggerCallback) -> Registration:
        registration = Registration(
            TriggerKind.FILETYPE,
            ",".join(filetypes),
            on_revoke=lambda: _discard(self._filetypes, registration),
        )
        self._filetypes.append(_Armed(registration, callback, filetypes=frozenset(filetypes)))
        return registration

    def on_keypress(self, key: str, callback: KeyCallback) -> Registration:
        registration = Registration(
            TriggerKind.KEYS, key, on_revoke=lambda: _pop_if(self._key_stubs, key, registration)
        )
        self._key_stubs[key] = _Armed(registration, callback)
        return registration

    # ---------------------------------------------------------------------------
    # Real handlers (defined by activated packages)
    # ---------------------------------------------------------------------------

    def define_command(self, name: str, handler: CommandHandler) -> None:
        self._commands[name] = handler

    def map_key(self, key: str, handler: KeyHandler) -> None:
        self._keymaps[key] = handler

    def has_command(self, name: str) -> bool:
        return name in self._commands or name in self._command_stubs

    def armed_count(self) -> int:
        """Number of trigger registrations still waiting to fire."""
        return (
            sum(len(b) for b in self._events.values())
            + len(self._filetypes)
            + len(self._command_stubs)
            + len(self._key_stubs)
        )

    # ---------------------------------------------------------------------------
    # Firing
    # ---------------------------------------------------------------------------

    def emit_event(self, name: str, subject: str = "") -> int:
        """Fire event *name*; returns how many armed callbacks ran."""
        fired = 0
        for armed in list(self._events.get(name, ())):
            if not armed.registration.active:
                continue
            if not fnmatch.fnmatchcase(subject, armed.pattern):
                continue
            armed.registration.revoke()
            armed.callback()
            fired += 1
        return fired

    def set_filetype(self, filetype: str) -> int:
        """Announce that a buffer of *filetype* was opened."""
        fired = 0
        for armed in list(self._filetypes):
            if not armed.registration.active or filetype not in armed.filetypes:
                continue
            armed.registration.revoke()
            armed.callback()
            fired += 1
        fired += self.emit_event("FileType", filetype)
        return fired

    def run_command(self, name: str, *args: object) -> bool:
        """Invoke command *name*.  Returns False when nothing handles it.

        A pending trigger stub runs first; if the package it activates
        defined the real command, that command then runs with *args*.
        """
        stub = self._command_stubs.get(name)
        if stub is not None and stub.registration.active:
            stub.registration.revoke()
            stub.callback()
            handler = self._commands.get(name)
            if handler is None:
                log.warning("command_not_defined_after_activation", command=name)
                return True
            handler(*args)
            return True

        handler = self._commands.get(name)
        if handler is None:
            return False
        handler(*args)
        return True

    def press_key(self, key: str) -> bool:
        """Press *key*.  Returns False when nothing is mapped to it."""
        stub = self._key_stubs.get(key)
        if stub is not None and stub.registration.active:
            stub.registration.revoke()
            replay = stub.callback()
            if replay and key in self._keymaps:
                self._keymaps[key]()
            return True

        handler = self._keymaps.get(key)
        if handler is None:
            return False
        handler()
        return True


def _discard(items: list[_Armed], registration: Registration) -> None:
    items[:] = [a for a in items if a.registration is not registration]


def _pop_if(table: dict[str, _Armed], key: str, registration: Registration) -> None:
    armed = table.get(key)
    if armed is not None and armed.registration is registration:
        del table[key]

