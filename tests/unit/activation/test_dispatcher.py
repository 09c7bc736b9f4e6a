"""Unit tests — LocalDispatcher one-shot triggers and real handlers."""

from __future__ import annotations

import pytest

from turbine.activation.dispatcher import LocalDispatcher, Registration
from turbine.packages.models import TriggerKind


@pytest.fixture
def dispatcher() -> LocalDispatcher:
    return LocalDispatcher()


@pytest.mark.unit
class TestRegistration:
    def test_revoke_is_idempotent(self) -> None:
        calls: list[int] = []
        reg = Registration(TriggerKind.COMMAND, "X", on_revoke=lambda: calls.append(1))
        assert reg.active
        reg.revoke()
        reg.revoke()
        assert not reg.active
        assert calls == [1]

    def test_repr_shows_state(self) -> None:
        reg = Registration(TriggerKind.KEYS, "<leader>f")
        assert "active" in repr(reg)
        reg.revoke()
        assert "revoked" in repr(reg)


@pytest.mark.unit
class TestEvents:
    def test_fires_once(self, dispatcher: LocalDispatcher) -> None:
        fired: list[str] = []
        reg = dispatcher.on_event("BufRead", "*", lambda: fired.append("x"))

        assert dispatcher.emit_event("BufRead") == 1
        assert dispatcher.emit_event("BufRead") == 0
        assert fired == ["x"]
        assert not reg.active
        assert dispatcher.armed_count() == 0

    def test_pattern_filters_subject(self, dispatcher: LocalDispatcher) -> None:
        fired: list[str] = []
        dispatcher.on_event("BufRead", "*.py", lambda: fired.append("py"))

        assert dispatcher.emit_event("BufRead", "init.lua") == 0
        assert dispatcher.emit_event("BufRead", "main.py") == 1
        assert fired == ["py"]

    def test_revoking_one_keeps_sibling(self, dispatcher: LocalDispatcher) -> None:
        fired: list[str] = []
        first = dispatcher.on_event("VimEnter", "*", lambda: fired.append("first"))
        dispatcher.on_event("VimEnter", "*", lambda: fired.append("second"))

        first.revoke()
        dispatcher.emit_event("VimEnter")

        assert fired == ["second"]

    def test_unknown_event(self, dispatcher: LocalDispatcher) -> None:
        assert dispatcher.emit_event("Nothing") == 0


@pytest.mark.unit
class TestFiletypes:
    def test_set_filetype_fires_matching(self, dispatcher: LocalDispatcher) -> None:
        fired: list[str] = []
        dispatcher.on_filetype(("python", "cython"), lambda: fired.append("py"))
        dispatcher.on_filetype(("lua",), lambda: fired.append("lua"))

        assert dispatcher.set_filetype("cython") == 1
        assert dispatcher.set_filetype("cython") == 0
        assert fired == ["py"]
        assert dispatcher.armed_count() == 1

    def test_set_filetype_emits_filetype_event(self, dispatcher: LocalDispatcher) -> None:
        fired: list[str] = []
        dispatcher.on_event("FileType", "rust", lambda: fired.append("rust"))

        assert dispatcher.set_filetype("go") == 0
        assert dispatcher.set_filetype("rust") == 1
        assert fired == ["rust"]


@pytest.mark.unit
class TestCommands:
    def test_stub_then_real_command(self, dispatcher: LocalDispatcher) -> None:
        received: list[tuple] = []

        def activate() -> None:
            dispatcher.define_command("Greet", lambda *args: received.append(args))

        dispatcher.on_command("Greet", activate)
        assert dispatcher.has_command("Greet")

        assert dispatcher.run_command("Greet", "world") is True
        assert dispatcher.run_command("Greet", "again") is True
        assert received == [("world",), ("again",)]
        assert dispatcher.armed_count() == 0

    def test_stub_without_real_command(self, dispatcher: LocalDispatcher) -> None:
        fired: list[int] = []
        dispatcher.on_command("Ghost", lambda: fired.append(1))

        assert dispatcher.run_command("Ghost") is True
        assert dispatcher.run_command("Ghost") is False
        assert fired == [1]

    def test_unknown_command(self, dispatcher: LocalDispatcher) -> None:
        assert dispatcher.run_command("Nope") is False
        assert not dispatcher.has_command("Nope")

    def test_revoked_stub_is_removed(self, dispatcher: LocalDispatcher) -> None:
        reg = dispatcher.on_command("X", lambda: None)
        reg.revoke()
        assert not dispatcher.has_command("X")

    def test_revoking_replaced_stub_keeps_new_one(self, dispatcher: LocalDispatcher) -> None:
        fired: list[str] = []
        old = dispatcher.on_command("X", lambda: fired.append("old"))
        dispatcher.on_command("X", lambda: fired.append("new"))

        old.revoke()
        dispatcher.run_command("X")

        assert fired == ["new"]


@pytest.mark.unit
class TestKeys:
    def test_stub_replays_key(self, dispatcher: LocalDispatcher) -> None:
        pressed: list[str] = []

        def activate() -> bool:
            dispatcher.map_key("<leader>f", lambda: pressed.append("find"))
            return True

        dispatcher.on_keypress("<leader>f", activate)

        assert dispatcher.press_key("<leader>f") is True
        assert pressed == ["find"]
        assert dispatcher.press_key("<leader>f") is True
        assert pressed == ["find", "find"]

    def test_stub_without_replay(self, dispatcher: LocalDispatcher) -> None:
        pressed: list[str] = []
        dispatcher.map_key("k", lambda: pressed.append("k"))
        dispatcher.on_keypress("k", lambda: False)

        dispatcher.press_key("k")

        assert pressed == []

    def test_unmapped_key(self, dispatcher: LocalDispatcher) -> None:
        assert dispatcher.press_key("q") is False
