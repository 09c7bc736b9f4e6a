"""TTL cache persisted through a ``Storage``.

Each entry is one JSON document at ``<cache_dir>/<key>.json``::

    {"value": <any JSON value>, "timestamp": <int unix seconds>}

Expiry is lazy: there is no sweeper.  ``get`` compares the timestamp with
the configured TTL and deletes a stale entry the moment it notices, so a
later ``get`` stays a miss even if the clock is moved backwards.

The cache is best effort, never a source of truth.  Corrupt payloads are
treated as misses and removed; write failures are logged and reported as
``False``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from turbine.clock import Clock, system_clock
from turbine.exceptions import CacheCorruptionError, CacheKeyError
from turbine.logging import get_logger
from turbine.storage import Storage

log = get_logger(__name__)

_SUFFIX = ".json"

SPECS_KEY = "package_specs"
PACKAGE_KEY_PREFIX = "package."


def package_key(name: str) -> str:
    """Metadata key for a single package, namespaced away from SPECS_KEY."""
    return f"{PACKAGE_KEY_PREFIX}{name}"


class CacheStore:
    """Key/value store with time-to-live staleness.

    Usage::

        cache = CacheStore(storage, settings.cache_dir, ttl=3600)
        cache.put("package.telescope", {"revision": "abc123"})
        cache.get("package.telescope")    # -> {"revision": "abc123"}
        cache.delete("package.telescope")
    """

    def __init__(
        self,
        storage: Storage,
        directory: Path,
        ttl: int,
        clock: Clock = system_clock,
    ) -> None:
        self._storage = storage
        self._dir = directory
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> int:
        return self._ttl

    def path_for(self, key: str) -> Path:
        self._check_key(key)
        return self._dir / f"{key}{_SUFFIX}"

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when missing, corrupt or expired."""
        path = self.path_for(key)
        raw = self._storage.read(path)
        if raw is None:
            return None

        try:
            value, timestamp = self._decode(key, raw)
        except CacheCorruptionError as exc:
            log.debug("cache_entry_corrupt", key=key, reason=exc.context["reason"])
            self._storage.delete(path)
            return None

        if timestamp is not None and self._clock() - timestamp > self._ttl:
            log.debug("cache_entry_expired", key=key, age=self._clock() - timestamp)
            self._storage.delete(path)
            return None

        return value

    def put(self, key: str, value: Any) -> bool:
        """Store *value* stamped with the current time.  Returns False on failure."""
        path = self.path_for(key)
        try:
            payload = json.dumps({"value": value, "timestamp": self._clock()})
        except (TypeError, ValueError) as exc:
            log.warning("cache_value_not_serialisable", key=key, error=str(exc))
            return False
        ok = self._storage.write(path, payload.encode("utf-8"))
        if not ok:
            log.warning("cache_write_failed", key=key)
        return ok

    def delete(self, key: str) -> None:
        self._storage.delete(self.path_for(key))

    def has_entry(self, key: str) -> bool:
        """True when a payload for *key* is stored, whether or not it is still valid."""
        return self._storage.read(self.path_for(key)) is not None

    # ---------------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------------

    def _check_key(self, key: str) -> None:
        if not key:
            raise CacheKeyError(key, "key must not be empty")
        if "/" in key or os.sep in key or (os.altsep and os.altsep in key):
            raise CacheKeyError(key, "key must not contain a path separator")
        if len(key) + len(_SUFFIX) > self._storage.max_name_length:
            raise CacheKeyError(
                key, f"key longer than {self._storage.max_name_length - len(_SUFFIX)} characters"
            )

    @staticmethod
    def _decode(key: str, raw: bytes) -> tuple[Any, int | None]:
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CacheCorruptionError(key, str(exc)) from exc
        if not isinstance(data, dict) or "value" not in data:
            raise CacheCorruptionError(key, "payload is not a cache entry")
        timestamp = data.get("timestamp")
        if timestamp is not None and (isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))):
            raise CacheCorruptionError(key, f"bad timestamp {timestamp!r}")
        return data["value"], timestamp
