"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "sourcarr",
    "environment": "dev",
    "http": {
        "timeout_seconds": 15.0,
        "follow_redirects": True,
        "user_agent": "Sourcarr/0.1.0",
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "backend": "memory",
        "directory": "./.cache/sourcarr",
        "ttl_seconds": 0,
    },
    "catalog": {
        "base_url": "http://localhost:3000",
        "search_timeout_seconds": 15.0,
        "detail_timeout_seconds": 15.0,
    },
    "probe": {
        "timeout_seconds": 8.0,
        "ping_enabled": True,
    },
    "prefer": {
        "enabled": True,
        "batches": 2,
    },
    "matcher": {
        "episode_tolerance": 5,
    },
    "playback": {
        "ad_block_default": True,
        "skip_check_interval_seconds": 1.5,
        "save_interval_seconds": None,  # Derived from cache backend
    },
}
