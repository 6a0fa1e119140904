"""Factory for per-view PlaybackSessions.

Each session gets its own probe memo so that probe results live exactly
as long as the session; SourcePrefer and the speed test share it.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from typing import Protocol

import structlog

from sourcarr.application.use_cases.playback_resolution import PlaybackResolver
from sourcarr.application.use_cases.playback_session import (
    PlaybackSession,
    SessionSettings,
)
from sourcarr.application.use_cases.source_prefer import SourcePrefer
from sourcarr.application.use_cases.source_search import SourceSearch
from sourcarr.application.use_cases.source_selector import SourceSelector
from sourcarr.domain.entities.playback import InitialParams
from sourcarr.domain.entities.sources import (
    CanonicalQuery,
    ProbeResult,
    RawSourceResult,
    ScoredSource,
)
from sourcarr.domain.ports.persistence import PersistenceCollaborator

log = structlog.get_logger(__name__)


class _ProbeMemo(Protocol):
    def get(self, key: str) -> ProbeResult | None: ...

    def has(self, key: str) -> bool: ...

    async def probe_source(self, source: RawSourceResult) -> ProbeResult: ...

    async def aclose(self) -> None: ...


class _Matcher(Protocol):
    def match_same_work(
        self,
        canonical: CanonicalQuery,
        candidates: Sequence[RawSourceResult],
    ) -> list[RawSourceResult]: ...


class _Scorer(Protocol):
    def rank(
        self,
        sources: Sequence[RawSourceResult],
        probes: Mapping[str, ProbeResult],
    ) -> list[ScoredSource]: ...


class _PreferMetrics(Protocol):
    def record_prefer(
        self,
        duration_ns: int,
        *,
        short_circuit: bool = False,
        all_failed: bool = False,
    ) -> None: ...


class PlaybackSessionFactory:
    """Builds a fully wired PlaybackSession for one set of InitialParams."""

    def __init__(
        self,
        *,
        search: SourceSearch,
        matcher: _Matcher,
        scorer: _Scorer,
        memo_factory: Callable[[], _ProbeMemo],
        persistence: PersistenceCollaborator,
        settings: SessionSettings | None = None,
        prefer_enabled: bool = True,
        prefer_batches: int = 2,
        metrics: _PreferMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.search = search
        self.matcher = matcher
        self.scorer = scorer
        self.memo_factory = memo_factory
        self.persistence = persistence
        self.settings = settings or SessionSettings()
        self.prefer_enabled = prefer_enabled
        self.prefer_batches = prefer_batches
        self.metrics = metrics
        self.clock = clock

    def __call__(self, params: InitialParams) -> PlaybackSession:
        return self.create(params)

    def create(self, params: InitialParams) -> PlaybackSession:
        memo = self.memo_factory()
        prefer = SourcePrefer(
            prober=memo,
            scorer=self.scorer,
            batches=self.prefer_batches,
            metrics=self.metrics,
        )
        resolver = PlaybackResolver(
            search=self.search,
            matcher=self.matcher,
            prefer=prefer,
            persistence=self.persistence,
            prefer_enabled=self.prefer_enabled,
        )
        log.debug(
            "playback_session_created",
            source=params.source,
            id=params.id,
            title=params.title,
        )
        return PlaybackSession(
            params,
            resolver=resolver,
            persistence=self.persistence,
            selector=SourceSelector(memo, batches=self.prefer_batches),
            probe_memo=memo,
            ready_marker=self.search,
            settings=self.settings,
            clock=self.clock,
        )
