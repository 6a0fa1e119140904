"""Diskcache adapter - SQLite-based cache without daemon process."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Optional

import structlog
from diskcache import Cache as DiskCache

from sourcarr.domain.entities.errors import PersistenceError

log = structlog.get_logger(__name__)


class DiskcacheAdapter:
    """Async wrapper for diskcache.Cache (sync-only library).

    Disk I/O runs via ``asyncio.to_thread``; a semaphore bounds parallel
    SQLite access.  Failures surface as ``PersistenceError``.

    Args:
        directory: SQLite DB path.
        ttl_seconds: Default TTL for ``set()``; 0 means never expire.
        max_concurrent: Max parallel disk ops.
    """

    def __init__(
        self,
        directory: str | Path = "./.cache/sourcarr",
        ttl_seconds: int = 0,
        max_concurrent: int = 10,
    ) -> None:
        self.directory = Path(directory)
        self.default_ttl = ttl_seconds
        self._cache: DiskCache | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> DiskcacheAdapter:
        if self._cache is None:
            self._cache = await asyncio.to_thread(DiskCache, str(self.directory))
            log.info("diskcache_opened", path=str(self.directory))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._cache is not None:
            await asyncio.to_thread(self._cache.close)
            self._cache = None
            log.info("diskcache_closed", directory=str(self.directory))

    def _require(self) -> DiskCache:
        if self._cache is None:
            raise RuntimeError(
                "Cache not initialized. Use 'async with cache:' or await cache.__aenter__()"
            )
        return self._cache

    async def _run(self, op: str, key: str, fn, *args, **kwargs) -> Any:
        async with self._semaphore:
            try:
                return await asyncio.to_thread(fn, *args, **kwargs)
            except (OSError, sqlite3.Error) as e:
                log.error("diskcache_error", op=op, key=key, error=str(e))
                raise PersistenceError(f"diskcache {op} failed: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        cache = self._require()
        value = await self._run("get", key, cache.get, key, default=None)
        log.debug("cache_get", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        cache = self._require()
        expire = ttl if ttl is not None else self.default_ttl
        await self._run("set", key, cache.set, key, value, expire=expire or None)
        log.debug("cache_set", key=key, ttl=expire)

    async def delete(self, key: str) -> bool:
        if self._cache is None:
            return False
        deleted = await self._run("delete", key, self._cache.delete, key)
        log.debug("cache_delete", key=key, deleted=deleted)
        return bool(deleted)

    async def exists(self, key: str) -> bool:
        if self._cache is None:
            return False
        cache = self._cache
        return await self._run("exists", key, cache.__contains__, key)

    async def clear(self) -> None:
        if self._cache is None:
            return
        await self._run("clear", "*", self._cache.clear)
        log.warning("cache_cleared", directory=str(self.directory))
