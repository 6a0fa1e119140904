from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, CacheConfig, EnvOverrides

_SECTION_KEYS: set[str] = {
    "http",
    "logging",
    "cache",
    "catalog",
    "probe",
    "prefer",
    "matcher",
    "playback",
}

# Flat ``<prefix>_<key>`` names whose prefix differs from the section name.
_PREFIX_ALIASES: dict[str, str] = {"log": "logging"}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into ``base`` in place and return ``base``."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, Mapping):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _split_flat_key(key: str) -> tuple[str, str] | None:
    """``playback_save_interval_seconds`` -> ``("playback", "save_interval_seconds")``."""
    prefix, sep, rest = key.partition("_")
    if not sep or not rest:
        return None
    section = _PREFIX_ALIASES.get(prefix, prefix)
    if section not in _SECTION_KEYS:
        return None
    return section, rest


def _normalize_layer(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Bring one layer (defaults/YAML/ENV/CLI) into the sectioned shape.

    Sectioned blocks pass through; flat keys as produced by EnvOverrides
    and the CLI are folded into their section.  Unknown keys are dropped.
    """
    out: dict[str, Any] = {}

    for key, value in data.items():
        if key in _SECTION_KEYS and isinstance(value, Mapping):
            _deep_merge(out.setdefault(key, {}), value)
            continue
        if key in ("app_name", "environment"):
            out[key] = value
            continue
        target = _split_flat_key(key)
        if target is not None:
            section, section_key = target
            out.setdefault(section, {})[section_key] = value

    return out


def _read_yaml_config(config_path: Path) -> dict[str, Any]:
    raw = config_path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(raw)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def _cache_env_layer() -> dict[str, Any]:
    """CACHE_* variables that were actually set, as a ``cache`` section."""
    provided = CacheConfig().model_dump(exclude_unset=True)
    if not provided:
        return {}
    return {"cache": provided}


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration with strict precedence:
    defaults < YAML file < env vars < cli overrides

    This function MUST NOT create files or directories (no filesystem side-effects).
    """
    cli_overrides = cli_overrides or {}

    # Load .env first so it participates as "env vars" layer.
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    base = _normalize_layer(deepcopy(DEFAULT_CONFIG))

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(config_path)
        yaml_layer = _normalize_layer(_read_yaml_config(config_path))
        _deep_merge(base, yaml_layer)

    env_layer = _normalize_layer(EnvOverrides().to_update_dict())
    _deep_merge(env_layer, _cache_env_layer())
    _deep_merge(base, env_layer)

    cli_layer = _normalize_layer(cli_overrides)
    _deep_merge(base, cli_layer)

    return AppConfig.model_validate(base)
