"""Play records, skip configs and favorites backed by CachePort."""

from __future__ import annotations

import json

import structlog

from sourcarr.domain.entities.records import FavoriteRecord, PlayRecord, SkipConfig
from sourcarr.domain.entities.sources import storage_key
from sourcarr.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)

_PLAY_RECORD = "playrecord"
_SKIP_CONFIG = "skipconfig"
_FAVORITE = "favorite"


def _key(kind: str, source: str, id: str) -> str:
    return f"{kind}:{storage_key(source, id)}"


class CachePlaybackStore:
    """PersistenceCollaborator over any CachePort backend.

    Values are stored as JSON strings under ``<kind>:<source>+<id>``.
    Backend failures propagate; callers decide whether to swallow them.
    """

    def __init__(self, cache: CachePort, ttl_seconds: int | None = None) -> None:
        self.cache = cache
        self.ttl = ttl_seconds

    async def _load(self, key: str) -> dict | None:
        data = await self.cache.get(key)
        if data is None:
            return None
        try:
            parsed = json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            log.error("playback_store_deserialize_error", key=key, error=str(e))
            return None
        return parsed if isinstance(parsed, dict) else None

    async def _save(self, key: str, payload: dict) -> None:
        await self.cache.set(key, json.dumps(payload), ttl=self.ttl)

    # --- play records ---

    async def get_play_record(self, source: str, id: str) -> PlayRecord | None:
        data = await self._load(_key(_PLAY_RECORD, source, id))
        return PlayRecord.from_dict(data) if data is not None else None

    async def save_play_record(self, source: str, id: str, record: PlayRecord) -> None:
        await self._save(_key(_PLAY_RECORD, source, id), record.to_dict())
        log.debug(
            "play_record_saved",
            key=storage_key(source, id),
            index=record.index,
            play_time=record.play_time,
        )

    async def delete_play_record(self, source: str, id: str) -> None:
        await self.cache.delete(_key(_PLAY_RECORD, source, id))

    # --- skip configs ---

    async def get_skip_config(self, source: str, id: str) -> SkipConfig | None:
        data = await self._load(_key(_SKIP_CONFIG, source, id))
        return SkipConfig.from_dict(data) if data is not None else None

    async def save_skip_config(self, source: str, id: str, config: SkipConfig) -> None:
        await self._save(_key(_SKIP_CONFIG, source, id), config.to_dict())

    async def delete_skip_config(self, source: str, id: str) -> None:
        await self.cache.delete(_key(_SKIP_CONFIG, source, id))

    # --- favorites ---

    async def is_favorited(self, source: str, id: str) -> bool:
        return await self.cache.exists(_key(_FAVORITE, source, id))

    async def get_favorite(self, source: str, id: str) -> FavoriteRecord | None:
        data = await self._load(_key(_FAVORITE, source, id))
        return FavoriteRecord.from_dict(data) if data is not None else None

    async def save_favorite(
        self, source: str, id: str, favorite: FavoriteRecord
    ) -> None:
        await self._save(_key(_FAVORITE, source, id), favorite.to_dict())

    async def delete_favorite(self, source: str, id: str) -> None:
        await self.cache.delete(_key(_FAVORITE, source, id))
