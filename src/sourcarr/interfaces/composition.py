"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from sourcarr.application.factories import PlaybackSessionFactory
from sourcarr.application.use_cases.playback_session import SessionSettings
from sourcarr.application.use_cases.source_search import SourceSearch
from sourcarr.infrastructure.cache.cache_factory import create_cache
from sourcarr.infrastructure.catalog import HttpCatalogClient
from sourcarr.infrastructure.config.schema import AppConfig
from sourcarr.infrastructure.metrics import PipelineMetrics
from sourcarr.infrastructure.persistence import CachePlaybackStore
from sourcarr.infrastructure.playback import (
    HttpManifestFetcher,
    HttpSourceProbe,
    MemoizedSourceProbe,
    SourceMatcher,
    SourceScorer,
)
from sourcarr.interfaces.app_state import AppState
from sourcarr.interfaces.idle_sweeper import IdleSweeper
from sourcarr.interfaces.search_debouncers import SearchDebouncers
from sourcarr.interfaces.session_registry import SessionRegistry

log = structlog.get_logger(__name__)


def _session_settings(config: AppConfig) -> SessionSettings:
    playback = config.playback
    return SessionSettings(
        ad_block_default=playback.ad_block_default,
        skip_check_interval_seconds=playback.skip_check_interval_seconds,
        episode_change_settle_seconds=playback.episode_change_settle_seconds,
        min_save_position_seconds=playback.min_save_position_seconds,
        save_interval_seconds=config.save_interval_seconds,
    )


def _build_source_search(state: AppState, config: AppConfig) -> SourceSearch:
    return SourceSearch(
        search=state.catalog,
        detail=state.catalog,
        search_timeout_seconds=config.catalog.search_timeout_seconds,
        detail_timeout_seconds=config.catalog.detail_timeout_seconds,
        metrics=state.metrics,
    )


def _build_session_factory(state: AppState, config: AppConfig) -> PlaybackSessionFactory:
    probe = HttpSourceProbe(
        state.manifest_fetcher,
        config.probe,
        metrics=state.metrics,
    )
    return PlaybackSessionFactory(
        search=state.source_search,
        matcher=SourceMatcher(
            bracket_pairs=config.matcher.bracket_pairs,
            episode_tolerance=config.matcher.episode_tolerance,
        ),
        scorer=SourceScorer(config.prefer),
        memo_factory=lambda: MemoizedSourceProbe(probe),
        persistence=state.store,
        settings=_session_settings(config),
        prefer_enabled=config.prefer.enabled,
        prefer_batches=config.prefer.batches,
        metrics=state.metrics,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Cache (backs the persistence store)
        2. HTTP client (catalog, manifests, probes)
        3. Catalog client
        4. Persistence store (uses cache)
        5. Source search + per-view debounced search
        6. Session factory (uses everything above)
        7. Session registry
        8. Idle sweeper (closes sessions nobody touched)
    """
    state = cast(AppState, app.state)
    config = state.config

    # 0) Metrics (must exist before components that record)
    state.metrics = PipelineMetrics()

    # 1) Cache
    cache = create_cache(config.cache)
    await cache.__aenter__()
    state.cache = cache
    log.info("cache_initialized", backend=config.cache.backend)

    # 2) HTTP client
    state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=config.http_follow_redirects,
    )
    state.manifest_fetcher = HttpManifestFetcher(
        state.http_client,
        referer=config.catalog.referer,
    )
    log.info("http_client_initialized", timeout=config.http_timeout_seconds)

    # 3) Catalog client
    state.catalog = HttpCatalogClient(
        http_client=state.http_client,
        config=config.catalog,
    )
    log.info("catalog_client_initialized", base_url=config.catalog.base_url)

    # 4) Persistence store
    state.store = CachePlaybackStore(
        cache=state.cache,
        ttl_seconds=config.cache.ttl_seconds or None,
    )
    log.info(
        "playback_store_initialized",
        save_interval_seconds=config.save_interval_seconds,
    )

    # 5) Source search
    state.source_search = _build_source_search(state, config)
    state.search_debouncers = SearchDebouncers(
        state.source_search,
        delay=config.playback.search_debounce_seconds,
    )

    # 6) Session factory
    state.session_factory = _build_session_factory(state, config)
    log.info(
        "session_factory_initialized",
        prefer_enabled=config.prefer.enabled,
        prefer_batches=config.prefer.batches,
    )

    # 7) Session registry
    state.registry = SessionRegistry(state.session_factory)

    # 8) Idle sweeper
    state.idle_sweeper = None
    state._idle_task = None
    if config.playback.session_idle_seconds > 0:
        state.idle_sweeper = IdleSweeper(
            state.registry,
            state.search_debouncers,
            idle_seconds=config.playback.session_idle_seconds,
            interval_seconds=config.playback.idle_sweep_interval_seconds,
        )
        state._idle_task = asyncio.create_task(state.idle_sweeper.run_forever())

    log.info("app_startup_complete")

    try:
        yield
    finally:
        if state._idle_task is not None:
            state._idle_task.cancel()
            with suppress(asyncio.CancelledError):
                await state._idle_task
            log.info("idle_sweeper_stopped")

        state.search_debouncers.cancel_all()
        await state.registry.close_all()
        log.info("sessions_closed_on_shutdown")

        await state.http_client.aclose()
        log.info("http_client_closed")

        await state.cache.aclose()
        log.info("cache_closed")

        log.info("app_shutdown_complete")
