"""Package data models.

Key classes
-----------
TriggerKind     — class of occurrence that can activate a deferred package
PackageSpec     — everything known about one package (the registry's unit)
PackageResult   — per-package outcome of install / update

Registration input
------------------
``PackageSpec.from_value`` accepts the loose shapes users write::

    "https://github.com/user/repo"                       # url only
    {"url": "...", "branch": "dev", "lazy": False}
    {"url": "...", "cmd": "Telescope", "keys": ["<leader>f", "<leader>g"]}
    {"url": "...", "event": "BufRead", "ft": ["python", "lua"], "config": setup}

Trigger values are normalised here, once, into a tuple of strings per
kind so nothing downstream has to branch on "string or list".
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from turbine.exceptions import InvalidSpecError
from turbine.storage import Storage


class TriggerKind(str, Enum):
    """Deferred-activation trigger categories."""

    EVENT = "event"
    COMMAND = "cmd"
    FILETYPE = "ft"
    KEYS = "keys"


ConfigCallback = Callable[[], Any]

_SPEC_FIELDS = {"url", "source", "branch", "lazy", "config", *(k.value for k in TriggerKind)}


def _normalise_values(name: str, kind: TriggerKind, raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        items: Iterable[Any] = (raw,)
    elif isinstance(raw, Iterable) and not isinstance(raw, Mapping):
        items = raw
    else:
        raise InvalidSpecError(name, f"'{kind.value}' must be a string or a list of strings")

    values: list[str] = []
    for item in items:
        if not isinstance(item, str) or not item:
            raise InvalidSpecError(name, f"'{kind.value}' values must be non-empty strings")
        if item not in values:
            values.append(item)
    return tuple(values)


@dataclass
class PackageSpec:
    """Complete description of a package."""

    name: str
    url: str | None = None
    branch: str | None = None
    lazy: bool | None = None
    """None = not specified; False = always activate on activate_all()."""

    triggers: dict[TriggerKind, tuple[str, ...]] = field(default_factory=dict)
    config: ConfigCallback | None = field(default=None, compare=False, repr=False)
    """Post-activation callback.  Lives in memory only, never persisted."""

    # ---------------------------------------------------------------------------
    # Construction
    # ---------------------------------------------------------------------------

    @classmethod
    def from_value(cls, name: str, value: Any) -> "PackageSpec":
        """Build a spec from a url string, a mapping or an existing spec."""
        if not isinstance(name, str) or not name:
            raise InvalidSpecError(str(name), "package name must be a non-empty string")
        separators = {"/", "\0", os.sep, os.altsep} - {None}
        if any(sep in name for sep in separators) or name in (".", ".."):
            raise InvalidSpecError(name, "package name must be a plain directory name")
        if len(name.encode("utf-8")) > Storage.max_name_length:
            raise InvalidSpecError(
                name[:32] + "...", f"package name longer than {Storage.max_name_length} bytes"
            )

        if isinstance(value, PackageSpec):
            return cls(
                name=name,
                url=value.url,
                branch=value.branch,
                lazy=value.lazy,
                triggers=dict(value.triggers),
                config=value.config,
            )
        if isinstance(value, str):
            return cls(name=name, url=value)
        if not isinstance(value, Mapping):
            raise InvalidSpecError(name, f"expected a url or a mapping, got {type(value).__name__}")

        unknown = set(value) - _SPEC_FIELDS
        if unknown:
            raise InvalidSpecError(name, f"unknown fields: {', '.join(sorted(map(str, unknown)))}")

        url = value.get("url", value.get("source"))
        if url is not None and not isinstance(url, str):
            raise InvalidSpecError(name, "'url' must be a string")
        branch = value.get("branch")
        if branch is not None and not isinstance(branch, str):
            raise InvalidSpecError(name, "'branch' must be a string")
        lazy = value.get("lazy")
        if lazy is not None and not isinstance(lazy, bool):
            raise InvalidSpecError(name, "'lazy' must be a boolean")
        config = value.get("config")
        if config is not None and not callable(config):
            raise InvalidSpecError(name, "'config' must be callable")

        triggers: dict[TriggerKind, tuple[str, ...]] = {}
        for kind in TriggerKind:
            values = _normalise_values(name, kind, value.get(kind.value))
            if values:
                triggers[kind] = values

        return cls(name=name, url=url or None, branch=branch, lazy=lazy, triggers=triggers, config=config)

    # ---------------------------------------------------------------------------
    # Business logic
    # ---------------------------------------------------------------------------

    @property
    def has_triggers(self) -> bool:
        return any(self.triggers.values())

    def trigger_values(self, kind: TriggerKind) -> tuple[str, ...]:
        return self.triggers.get(kind, ())

    def is_eager(self, lazy_load: bool) -> bool:
        """True if activate_all() should activate this package right away."""
        return self.lazy is False or not lazy_load or not self.has_triggers

    def is_lazy(self, lazy_load: bool) -> bool:
        """The ``lazy`` flag reported by status()."""
        return self.lazy is not False and lazy_load

    # ---------------------------------------------------------------------------
    # Serialisation (callbacks are dropped)
    # ---------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url}
        if self.branch is not None:
            data["branch"] = self.branch
        if self.lazy is not None:
            data["lazy"] = self.lazy
        for kind, values in self.triggers.items():
            data[kind.value] = list(values)
        return data

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "PackageSpec":
        return cls.from_value(name, dict(data))


@dataclass
class PackageResult:
    """Outcome of installing or updating one package."""

    succeeded: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"succeeded": self.succeeded, "message": self.message}
