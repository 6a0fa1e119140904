"""Tests for the cache adapters and the cache factory."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from sourcarr.infrastructure.cache import (
    DiskcacheAdapter,
    MemoryCacheAdapter,
    RedisAdapter,
    create_cache,
)
from sourcarr.infrastructure.config.schema import CacheConfig


class TestMemoryCacheAdapter:
    async def test_set_get_delete(self) -> None:
        cache = MemoryCacheAdapter()
        await cache.set("k", "v")
        assert await cache.get("k") == "v"
        assert await cache.exists("k")
        assert await cache.delete("k") is True
        assert await cache.get("k") is None
        assert await cache.delete("k") is False

    async def test_ttl_expiry(self) -> None:
        cache = MemoryCacheAdapter()
        with patch(
            "sourcarr.infrastructure.cache.memory_adapter.time.monotonic",
            return_value=100.0,
        ):
            await cache.set("k", "v", ttl=10)
        with patch(
            "sourcarr.infrastructure.cache.memory_adapter.time.monotonic",
            return_value=111.0,
        ):
            assert await cache.get("k") is None

    async def test_zero_ttl_never_expires(self) -> None:
        cache = MemoryCacheAdapter(ttl_seconds=0)
        await cache.set("k", "v")
        with patch(
            "sourcarr.infrastructure.cache.memory_adapter.time.monotonic",
            return_value=1e12,
        ):
            assert await cache.get("k") == "v"

    async def test_clear(self) -> None:
        cache = MemoryCacheAdapter()
        await cache.set("a", 1)
        await cache.clear()
        assert not await cache.exists("a")


class TestDiskcacheAdapter:
    async def test_roundtrip(self, tmp_path: Path) -> None:
        async with DiskcacheAdapter(directory=tmp_path / "db") as cache:
            await cache.set("k", '{"a": 1}')
            assert await cache.get("k") == '{"a": 1}'
            assert await cache.exists("k")
            assert await cache.delete("k") is True
            assert await cache.get("k") is None

    async def test_requires_open(self, tmp_path: Path) -> None:
        cache = DiskcacheAdapter(directory=tmp_path / "db")
        with pytest.raises(RuntimeError):
            await cache.get("k")


class TestCreateCache:
    def test_memory_default(self) -> None:
        assert isinstance(create_cache(CacheConfig()), MemoryCacheAdapter)

    def test_diskcache(self, tmp_path: Path) -> None:
        cache = create_cache(CacheConfig(backend="diskcache", directory=tmp_path))
        assert isinstance(cache, DiskcacheAdapter)

    def test_redis(self) -> None:
        cache = create_cache(
            CacheConfig(backend="redis", redis_url="redis://localhost:6379/1")
        )
        assert isinstance(cache, RedisAdapter)
