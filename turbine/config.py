"""Turbine — Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with TURBINE_
    3. User config:     ~/.config/turbine/config.yaml
    4. Explicit file:   ``Settings.load(config_file=...)``

All settings are immutable after load.  Call ``Settings.load()`` (or
``turbine.manager.configure()``) once at startup and pass the instance to
every component that needs it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from turbine.exceptions import ConfigurationError

DEFAULT_ROOT = Path("~/.local/share/turbine")
USER_CONFIG = Path("~/.config/turbine/config.yaml")


class LoggingConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TURBINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
        frozen=True,
    )

    root: Path = Field(
        default=DEFAULT_ROOT,
        description="Base directory; packages live in <root>/plugins, cache in <root>/cache.",
    )
    git_timeout: Annotated[int, Field(ge=1)] = Field(
        default=60_000,
        description="Deadline in milliseconds for every git subprocess.",
    )
    max_concurrent_jobs: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Maximum number of git subprocesses running at once.",
    )
    cache_ttl: Annotated[int, Field(ge=0)] = Field(
        default=3600,
        description="Seconds a cache entry stays valid.",
    )
    lazy_load: bool = Field(
        default=True,
        description="Global switch for trigger-based deferred activation.",
    )
    auto_sync: bool = Field(
        default=False,
        description="Run update_all() in Turbine.start() before activating.",
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("root", mode="after")
    @classmethod
    def expand_root(cls, v: Path) -> Path:
        return v.expanduser()

    @property
    def plugins_dir(self) -> Path:
        return self.root / "plugins"

    @property
    def cache_dir(self) -> Path:
        return self.root / "cache"

    @classmethod
    def from_options(cls, options: dict[str, Any] | None = None) -> "Settings":
        """Validate a plain options mapping.

        Raises:
            ConfigurationError: an option is unknown, mistyped or out of range.
        """
        try:
            return cls(**(options or {}))
        except ValidationError as exc:
            errors = [
                {"loc": ".".join(str(p) for p in e["loc"]), "msg": e["msg"]}
                for e in exc.errors()
            ]
            summary = "; ".join(f"{e['loc']}: {e['msg']}" for e in errors)
            raise ConfigurationError(f"Invalid configuration: {summary}", errors) from exc
        except TypeError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from YAML files + environment variables."""
        data: dict[str, Any] = {}

        candidates = [USER_CONFIG.expanduser()]
        if config_file:
            candidates.append(config_file.expanduser())

        for path in candidates:
            if not path.exists():
                continue
            import yaml

            with path.open() as f:
                try:
                    loaded = yaml.safe_load(f) or {}
                except yaml.YAMLError as exc:
                    raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
            if not isinstance(loaded, dict):
                raise ConfigurationError(f"{path} must contain a mapping of options")
            data.update(loaded)

        return cls.from_options(data)
