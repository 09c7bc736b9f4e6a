"""Unit tests — Settings loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from turbine.config import Settings
from turbine.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("turbine.config.USER_CONFIG", tmp_path / "absent.yaml")


@pytest.mark.unit
class TestDefaults:
    def test_defaults(self) -> None:
        s = Settings.from_options({})
        assert s.git_timeout == 60_000
        assert s.max_concurrent_jobs == 10
        assert s.cache_ttl == 3600
        assert s.lazy_load is True
        assert s.auto_sync is False
        assert s.logging.level == "info"

    def test_root_is_expanded(self) -> None:
        s = Settings.from_options({"root": "~/somewhere"})
        assert "~" not in str(s.root)
        assert s.root == Path("~/somewhere").expanduser()

    def test_derived_directories(self, tmp_path: Path) -> None:
        s = Settings.from_options({"root": str(tmp_path)})
        assert s.plugins_dir == tmp_path / "plugins"
        assert s.cache_dir == tmp_path / "cache"

    def test_settings_are_frozen(self) -> None:
        s = Settings.from_options({})
        with pytest.raises(ValidationError):
            s.cache_ttl = 5  # type: ignore[misc]


@pytest.mark.unit
class TestValidation:
    @pytest.mark.parametrize("value", [0, -1])
    def test_non_positive_concurrency_rejected(self, value: int) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Settings.from_options({"max_concurrent_jobs": value})
        assert exc_info.value.errors[0]["loc"] == "max_concurrent_jobs"

    def test_zero_git_timeout_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings.from_options({"git_timeout": 0})

    def test_negative_ttl_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings.from_options({"cache_ttl": -1})

    def test_zero_ttl_allowed(self) -> None:
        assert Settings.from_options({"cache_ttl": 0}).cache_ttl == 0

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="max_jobs"):
            Settings.from_options({"max_jobs": 3})

    def test_wrong_type_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings.from_options({"max_concurrent_jobs": "ten"})

    def test_bad_logging_level_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings.from_options({"logging": {"level": "loud"}})


@pytest.mark.unit
class TestLoad:
    def test_load_without_files_uses_defaults(self) -> None:
        assert Settings.load().max_concurrent_jobs == 10

    def test_load_explicit_file(self, tmp_path: Path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text(f"root: {tmp_path}\nmax_concurrent_jobs: 4\nlazy_load: false\n")
        s = Settings.load(config_file=config)
        assert s.root == tmp_path
        assert s.max_concurrent_jobs == 4
        assert s.lazy_load is False

    def test_explicit_file_overrides_user_config(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        user = tmp_path / "user.yaml"
        user.write_text("max_concurrent_jobs: 3\ncache_ttl: 10\n")
        monkeypatch.setattr("turbine.config.USER_CONFIG", user)
        explicit = tmp_path / "explicit.yaml"
        explicit.write_text("max_concurrent_jobs: 7\n")

        s = Settings.load(config_file=explicit)
        assert s.max_concurrent_jobs == 7
        assert s.cache_ttl == 10

    def test_non_mapping_file_rejected(self, tmp_path: Path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            Settings.load(config_file=config)

    def test_unparseable_file_rejected(self, tmp_path: Path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("root: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Cannot parse"):
            Settings.load(config_file=config)

    def test_environment_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TURBINE_CACHE_TTL", "42")
        assert Settings.load().cache_ttl == 42
