"""Search and detail lookups with synthesized progress.

A single round-trip to the search collaborator; progress is derived
from the byte-download progress of that one response and mapped into
the [0, 30] band of the overall pipeline.  Detail lookups use [70, 90].
Failures report ``idle``/0 and re-raise: no retries happen here.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from typing import Protocol

import structlog

from sourcarr.application.concurrency import SupersedingDebouncer
from sourcarr.domain.entities.errors import CatalogError
from sourcarr.domain.entities.progress import ProgressState
from sourcarr.domain.entities.sources import RawSourceResult
from sourcarr.domain.ports.catalog import DetailCollaborator, SearchCollaborator

log = structlog.get_logger(__name__)

ProgressCallback = Callable[[ProgressState], None]


class _MetricsRecorder(Protocol):
    def record_search(
        self, duration_ns: int, result_count: int, *, success: bool
    ) -> None: ...


def _percent(loaded: int, total: int) -> int:
    return math.floor(loaded / total * 100 + 0.5)


def search_progress(percent: int) -> ProgressState:
    """Map response download percent onto the [5, 30] search band."""
    if percent < 25:
        return ProgressState(
            "searching",
            5 + percent * 0.2,
            "searching sources",
            "connecting to providers",
        )
    if percent < 50:
        return ProgressState(
            "searching",
            10 + (percent - 25) * 0.4,
            "parsing search results",
            "processing search data",
        )
    if percent < 75:
        return ProgressState(
            "searching",
            20 + (percent - 50) * 0.4,
            "filtering sources",
            "filtering matching results",
        )
    return ProgressState("searching", 30, "search completed", "found matching sources")


def detail_progress(percent: int) -> ProgressState:
    """Map response download percent onto the [70, 85] detail band."""
    if percent < 50:
        return ProgressState(
            "fetching",
            70 + percent * 0.3,
            "fetching video details",
            "loading title information",
        )
    if percent < 80:
        return ProgressState(
            "fetching",
            75 + (percent - 50) * 0.2,
            "parsing video details",
            "processing title data",
        )
    return ProgressState("fetching", 85, "details fetched", "preparing player")


class SourceSearch:
    """Progress-reporting wrapper around the search/detail collaborators."""

    def __init__(
        self,
        *,
        search: SearchCollaborator,
        detail: DetailCollaborator,
        search_timeout_seconds: float | None = None,
        detail_timeout_seconds: float | None = None,
        metrics: _MetricsRecorder | None = None,
    ) -> None:
        self._search = search
        self._detail = detail
        self._search_timeout = search_timeout_seconds
        self._detail_timeout = detail_timeout_seconds
        self._metrics = metrics

    @staticmethod
    def _emit(on_progress: ProgressCallback | None, state: ProgressState) -> None:
        if on_progress is not None:
            on_progress(state)

    async def search(
        self,
        query: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[RawSourceResult]:
        self._emit(
            on_progress,
            ProgressState(
                "searching",
                0,
                "searching sources",
                "connecting to providers",
                estimated_time=5,
            ),
        )

        def _on_bytes(loaded: int, total: int | None) -> None:
            if total:
                self._emit(on_progress, search_progress(_percent(loaded, total)))

        start_ns = time.perf_counter_ns()
        try:
            results = await asyncio.wait_for(
                self._search.search(query, on_download_progress=_on_bytes),
                timeout=self._search_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = "search timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
            log.warning("source_search_failed", query=query, error=error)
            if self._metrics is not None:
                self._metrics.record_search(
                    time.perf_counter_ns() - start_ns, 0, success=False
                )
            self._emit(on_progress, ProgressState("idle", 0, "search failed", error))
            if isinstance(e, asyncio.TimeoutError):
                raise CatalogError(error) from e
            raise

        if self._metrics is not None:
            self._metrics.record_search(
                time.perf_counter_ns() - start_ns, len(results), success=True
            )
        self._emit(
            on_progress,
            ProgressState(
                "searching",
                30,
                "search completed",
                f"found {len(results)} matching sources",
            ),
        )
        log.info("source_search_completed", query=query, results=len(results))
        return results

    async def fetch_detail(
        self,
        source: str,
        id: str,
        on_progress: ProgressCallback | None = None,
    ) -> RawSourceResult:
        self._emit(
            on_progress,
            ProgressState(
                "fetching",
                70,
                "fetching video details",
                "loading title information",
                estimated_time=2,
            ),
        )

        def _on_bytes(loaded: int, total: int | None) -> None:
            if total:
                self._emit(on_progress, detail_progress(_percent(loaded, total)))

        try:
            result = await asyncio.wait_for(
                self._detail.fetch_detail(source, id, on_download_progress=_on_bytes),
                timeout=self._detail_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = (
                "detail fetch timed out"
                if isinstance(e, asyncio.TimeoutError)
                else str(e)
            )
            log.warning("source_detail_failed", source=source, id=id, error=error)
            self._emit(
                on_progress, ProgressState("idle", 0, "detail fetch failed", error)
            )
            if isinstance(e, asyncio.TimeoutError):
                raise CatalogError(error) from e
            raise

        self._emit(
            on_progress,
            ProgressState("fetching", 90, "details fetched", "starting playback"),
        )
        return result

    def mark_ready(self, on_progress: ProgressCallback | None = None) -> None:
        self._emit(
            on_progress,
            ProgressState("ready", 100, "ready to play", "video loaded"),
        )


class DebouncedSearch:
    """SourceSearch behind a superseding debouncer.

    Rapid submissions within ``delay`` collapse into one search; a
    newer submission cancels an older in-flight one, whose caller
    receives ``None``.
    """

    def __init__(self, search: SourceSearch, *, delay: float = 0.1) -> None:
        self._search = search
        self._debouncer: SupersedingDebouncer[list[RawSourceResult]] = (
            SupersedingDebouncer(delay)
        )

    async def submit(
        self,
        query: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[RawSourceResult] | None:
        return await self._debouncer.submit(
            lambda: self._search.search(query, on_progress)
        )

    def cancel(self) -> None:
        self._debouncer.cancel()
