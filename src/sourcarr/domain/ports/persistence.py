"""Persistence port for play records, skip configs and favorites.

Every method is keyed by ``source+id``. Implementations may fail
transiently; callers log and continue.
"""

from __future__ import annotations

from typing import Protocol

from sourcarr.domain.entities.records import FavoriteRecord, PlayRecord, SkipConfig


class PersistenceCollaborator(Protocol):
    async def get_play_record(self, source: str, id: str) -> PlayRecord | None: ...

    async def save_play_record(
        self, source: str, id: str, record: PlayRecord
    ) -> None: ...

    async def delete_play_record(self, source: str, id: str) -> None: ...

    async def get_skip_config(self, source: str, id: str) -> SkipConfig | None: ...

    async def save_skip_config(
        self, source: str, id: str, config: SkipConfig
    ) -> None: ...

    async def delete_skip_config(self, source: str, id: str) -> None: ...

    async def is_favorited(self, source: str, id: str) -> bool: ...

    async def save_favorite(
        self, source: str, id: str, favorite: FavoriteRecord
    ) -> None: ...

    async def delete_favorite(self, source: str, id: str) -> None: ...
