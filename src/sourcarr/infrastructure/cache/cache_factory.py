"""Cache factory - builds the adapter selected by CacheConfig."""

from __future__ import annotations

import structlog

from sourcarr.domain.ports.cache import CachePort
from sourcarr.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from sourcarr.infrastructure.cache.memory_adapter import MemoryCacheAdapter
from sourcarr.infrastructure.cache.redis_adapter import RedisAdapter
from sourcarr.infrastructure.config.schema import CacheConfig

log = structlog.get_logger(__name__)


def create_cache(config: CacheConfig) -> CachePort:
    """Create the CachePort implementation for ``config.backend``.

    Raises:
        ValueError: If the backend is unknown.
    """
    log.info(
        "cache_factory_create",
        backend=config.backend,
        ttl=config.ttl_seconds,
        max_concurrent=config.max_concurrent,
    )
    if config.backend == "memory":
        return MemoryCacheAdapter(ttl_seconds=config.ttl_seconds)
    if config.backend == "diskcache":
        return DiskcacheAdapter(
            directory=config.directory,
            ttl_seconds=config.ttl_seconds,
            max_concurrent=config.max_concurrent,
        )
    if config.backend == "redis":
        return RedisAdapter(
            url=config.redis_url,
            ttl_seconds=config.ttl_seconds,
            max_concurrent=max(config.max_concurrent, 50),
        )
    raise ValueError(
        f"Unknown cache backend: {config.backend!r}. "
        "Must be 'memory', 'diskcache' or 'redis'."
    )
