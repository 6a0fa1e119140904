"""Redis adapter - async Redis via redis.asyncio."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from sourcarr.domain.entities.errors import PersistenceError

log = structlog.get_logger(__name__)


class RedisAdapter:
    """Async Redis cache storing JSON-encoded values.

    A semaphore limits parallel Redis ops.  Connection and command
    failures surface as ``PersistenceError``.

    Args:
        url: Redis URL (e.g. ``redis://localhost:6379/0``).
        ttl_seconds: Default TTL; 0 means keys never expire.
        max_concurrent: Max parallel Redis ops.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 0,
        max_concurrent: int = 50,
    ) -> None:
        self.url = url
        self.default_ttl = ttl_seconds
        self._client: Redis | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> RedisAdapter:
        if self._client is None:
            self._client = Redis.from_url(self.url, decode_responses=True)
            try:
                await self._client.ping()
                log.info("redis_connected", url=self.url)
            except RedisError as e:
                log.error("redis_connection_failed", url=self.url, error=str(e))
                raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("redis_closed")

    def _require(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis not initialized. Use 'async with cache:'")
        return self._client

    async def get(self, key: str) -> Any | None:
        client = self._require()
        async with self._semaphore:
            try:
                raw = await client.get(key)
            except RedisError as e:
                log.error("redis_get_error", key=key, error=str(e))
                raise PersistenceError(f"redis get failed: {e}") from e
        if raw is None:
            log.debug("cache_miss", key=key)
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("redis_value_undecodable", key=key)
            return None

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        client = self._require()
        expire = ttl if ttl is not None else self.default_ttl
        packed = json.dumps(value)
        async with self._semaphore:
            try:
                if expire:
                    await client.setex(key, expire, packed)
                else:
                    await client.set(key, packed)
            except RedisError as e:
                log.error("redis_set_error", key=key, error=str(e))
                raise PersistenceError(f"redis set failed: {e}") from e
        log.debug("cache_set", key=key, ttl=expire, size_bytes=len(packed))

    async def delete(self, key: str) -> bool:
        if self._client is None:
            return False
        async with self._semaphore:
            try:
                deleted = await self._client.delete(key)
            except RedisError as e:
                log.error("redis_delete_error", key=key, error=str(e))
                raise PersistenceError(f"redis delete failed: {e}") from e
        log.debug("cache_delete", key=key, deleted=deleted > 0)
        return deleted > 0

    async def exists(self, key: str) -> bool:
        if self._client is None:
            return False
        async with self._semaphore:
            try:
                return await self._client.exists(key) > 0
            except RedisError as e:
                log.error("redis_exists_error", key=key, error=str(e))
                raise PersistenceError(f"redis exists failed: {e}") from e

    async def clear(self) -> None:
        if self._client is None:
            return
        async with self._semaphore:
            try:
                await self._client.flushdb()
            except RedisError as e:
                log.error("redis_flush_error", error=str(e))
                raise PersistenceError(f"redis flush failed: {e}") from e
        log.warning("redis_flushed")
