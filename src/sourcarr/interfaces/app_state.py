"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from sourcarr.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from sourcarr.application.factories import PlaybackSessionFactory
    from sourcarr.application.use_cases.source_search import SourceSearch
    from sourcarr.domain.ports import CachePort
    from sourcarr.infrastructure.catalog import HttpCatalogClient
    from sourcarr.infrastructure.metrics import PipelineMetrics
    from sourcarr.infrastructure.persistence import CachePlaybackStore
    from sourcarr.infrastructure.playback import HttpManifestFetcher
    from sourcarr.interfaces.idle_sweeper import IdleSweeper
    from sourcarr.interfaces.search_debouncers import SearchDebouncers
    from sourcarr.interfaces.session_registry import SessionRegistry


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    cache: CachePort
    http_client: httpx.AsyncClient
    catalog: HttpCatalogClient
    store: CachePlaybackStore
    manifest_fetcher: HttpManifestFetcher

    # Metrics (in-memory counters)
    metrics: PipelineMetrics

    # Application services
    source_search: SourceSearch
    search_debouncers: SearchDebouncers
    session_factory: PlaybackSessionFactory
    registry: SessionRegistry

    # Background tasks
    idle_sweeper: IdleSweeper | None
    _idle_task: asyncio.Task | None
