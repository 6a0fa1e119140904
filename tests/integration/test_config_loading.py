"""Integration tests for configuration loading with layered precedence.

Tests the real load_config() function with actual YAML files, environment
variables, and CLI overrides to verify precedence: defaults < YAML < ENV < CLI.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from sourcarr.infrastructure.config.load import load_config

pytestmark = pytest.mark.integration


@pytest.fixture()
def yaml_config(tmp_path: Path) -> Path:
    """Write a minimal YAML config and return its path."""
    config = {
        "app_name": "sourcarr-test",
        "environment": "test",
        "http": {
            "timeout_seconds": 10.0,
            "user_agent": "TestAgent/1.0",
        },
        "logging": {"level": "DEBUG", "format": "console"},
        "cache": {"backend": "diskcache", "directory": str(tmp_path / "cache")},
        "catalog": {"base_url": "http://catalog.test"},
        "prefer": {"batches": 3},
        "matcher": {"bracket_pairs": ["[]", "<>"]},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(config), encoding="utf-8")
    return path


class TestDefaultsOnly:
    """Load with no YAML, no ENV, no CLI: pure defaults."""

    def test_defaults_produce_valid_config(self) -> None:
        config = load_config()
        assert config.app_name == "sourcarr"
        assert config.environment == "dev"
        assert config.http_timeout_seconds == 15.0
        assert config.log_level == "INFO"
        assert config.log_format == "console"
        assert config.cache.backend == "memory"
        assert config.prefer.batches == 2
        assert config.matcher.episode_tolerance == 5
        assert config.playback.ad_block_default is True

    def test_prod_derives_json_logs(self) -> None:
        config = load_config(cli_overrides={"environment": "prod"})
        assert config.log_format == "json"

    def test_local_save_interval(self) -> None:
        assert load_config().save_interval_seconds == 5.0


class TestYamlOverrides:
    def test_yaml_overrides_defaults(self, yaml_config: Path, tmp_path: Path) -> None:
        config = load_config(config_path=yaml_config)
        assert config.app_name == "sourcarr-test"
        assert config.http_timeout_seconds == 10.0
        assert config.http_user_agent == "TestAgent/1.0"
        assert config.log_level == "DEBUG"
        assert config.cache.backend == "diskcache"
        assert config.cache.directory == tmp_path / "cache"
        assert config.catalog.base_url == "http://catalog.test"
        assert config.prefer.batches == 3
        assert config.matcher.bracket_pairs == ["[]", "<>"]

    def test_yaml_file_not_found_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(config_path=tmp_path / "nonexistent.yaml")

    def test_partial_section_keeps_other_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "partial.yaml"
        path.write_text(yaml.dump({"probe": {"timeout_seconds": 3}}), encoding="utf-8")
        config = load_config(config_path=path)
        assert config.probe.timeout_seconds == 3.0
        assert config.probe.ping_enabled is True

    def test_invalid_bracket_pair_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(
            yaml.dump({"matcher": {"bracket_pairs": ["[x]"]}}), encoding="utf-8"
        )
        with pytest.raises(ValidationError):
            load_config(config_path=path)

    def test_non_mapping_yaml_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(config_path=path)


class TestEnvOverrides:
    def test_env_overrides_yaml(
        self, yaml_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SOURCARR_LOG_LEVEL", "WARNING")
        monkeypatch.setenv("SOURCARR_CATALOG_BASE_URL", "http://env.test")

        config = load_config(config_path=yaml_config)
        assert config.log_level == "WARNING"
        assert config.catalog.base_url == "http://env.test"
        assert config.app_name == "sourcarr-test"

    def test_cache_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_BACKEND", "redis")
        monkeypatch.setenv("CACHE_REDIS_URL", "redis://cache.internal:6379/0")

        config = load_config()
        assert config.cache.backend == "redis"
        assert config.cache.is_remote is True
        assert config.save_interval_seconds == 20.0

    def test_local_redis_interval(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_BACKEND", "redis")
        assert load_config().save_interval_seconds == 10.0

    def test_explicit_save_interval(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_BACKEND", "redis")
        monkeypatch.setenv("SOURCARR_PLAYBACK_SAVE_INTERVAL_SECONDS", "3")
        assert load_config().save_interval_seconds == 3.0

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SOURCARR_PREFER_ENABLED", raising=False)
        dotenv = tmp_path / ".env"
        dotenv.write_text("SOURCARR_PREFER_ENABLED=false\n", encoding="utf-8")

        config = load_config(dotenv_path=dotenv)
        assert config.prefer.enabled is False

    def test_missing_dotenv_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(dotenv_path=tmp_path / "missing.env")


class TestCliOverrides:
    def test_cli_beats_env(
        self, yaml_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SOURCARR_CATALOG_BASE_URL", "http://env.test")
        config = load_config(
            config_path=yaml_config,
            cli_overrides={"catalog_base_url": "http://cli.test"},
        )
        assert config.catalog.base_url == "http://cli.test"

    def test_sectioned_cli_overrides(self) -> None:
        config = load_config(cli_overrides={"http": {"timeout_seconds": 5.0}})
        assert config.http_timeout_seconds == 5.0

    def test_to_sectioned_dict(self) -> None:
        data = load_config().to_sectioned_dict()
        assert data["http"]["timeout_seconds"] == 15.0
        assert data["logging"] == {"level": "INFO", "format": "console"}
        assert data["prefer"]["batches"] == 2
