"""In-process cache adapter (default backend, lost on restart)."""

from __future__ import annotations

import time
from typing import Any

import structlog

log = structlog.get_logger(__name__)


class MemoryCacheAdapter:
    """Dict-backed CachePort with lazy TTL expiry.

    Args:
        ttl_seconds: Default TTL for ``set()``; 0 means never expire.
    """

    def __init__(self, ttl_seconds: int = 0) -> None:
        self.default_ttl = ttl_seconds
        self._entries: dict[str, tuple[Any, float | None]] = {}

    async def __aenter__(self) -> MemoryCacheAdapter:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._entries.clear()

    def _live(self, key: str) -> tuple[Any, float | None] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Any:
        entry = self._live(key)
        log.debug("cache_get", key=key, hit=entry is not None)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        expire = ttl if ttl is not None else self.default_ttl
        expires_at = time.monotonic() + expire if expire else None
        self._entries[key] = (value, expires_at)
        log.debug("cache_set", key=key, ttl=expire)

    async def delete(self, key: str) -> bool:
        deleted = self._live(key) is not None
        self._entries.pop(key, None)
        log.debug("cache_delete", key=key, deleted=deleted)
        return deleted

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def clear(self) -> None:
        self._entries.clear()
        log.warning("cache_cleared", backend="memory")
