"""Shared test fixtures for the Sourcarr test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from sourcarr.domain.entities import InitialParams, RawSourceResult
from sourcarr.infrastructure.cache.memory_adapter import MemoryCacheAdapter
from sourcarr.infrastructure.persistence import CachePlaybackStore

# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def source_a() -> RawSourceResult:
    """Three-episode series on provider ``alpha``."""
    return RawSourceResult(
        source="alpha",
        id="1",
        title="Frieren",
        year="2023",
        episodes=(
            "https://alpha.example.com/1/ep1.m3u8",
            "https://alpha.example.com/1/ep2.m3u8",
            "https://alpha.example.com/1/ep3.m3u8",
        ),
        source_name="Alpha",
    )


@pytest.fixture()
def source_b() -> RawSourceResult:
    """Same work on provider ``beta``."""
    return RawSourceResult(
        source="beta",
        id="2",
        title="Frieren",
        year="2023",
        episodes=(
            "https://beta.example.com/2/ep1.m3u8",
            "https://beta.example.com/2/ep2.m3u8",
            "https://beta.example.com/2/ep3.m3u8",
        ),
        source_name="Beta",
    )


@pytest.fixture()
def params() -> InitialParams:
    return InitialParams(title="Frieren", year="2023")


# ---------------------------------------------------------------------------
# Persistence fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def memory_store() -> CachePlaybackStore:
    """Real persistence store over the in-memory cache adapter."""
    return CachePlaybackStore(cache=MemoryCacheAdapter())


@pytest.fixture()
def mock_persistence() -> AsyncMock:
    """PersistenceCollaborator mock with empty reads."""
    persistence = AsyncMock()
    persistence.get_play_record.return_value = None
    persistence.get_skip_config.return_value = None
    persistence.is_favorited.return_value = False
    return persistence
