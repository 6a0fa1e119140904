"""Source preference: probe same-work candidates and pick the best.

Candidates are probed in two sequential batches (concurrent within a
batch), scored, and ranked.  Progress is reported in the [35, 70] band.
Per-source probe failures are excluded from ranking; if every probe
fails the first candidate is used so playback can always proceed.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from sourcarr.application.concurrency import run_in_batches
from sourcarr.domain.entities.progress import PreferProgressState
from sourcarr.domain.entities.sources import ProbeResult, RawSourceResult, ScoredSource

log = structlog.get_logger(__name__)

PreferProgressCallback = Callable[[PreferProgressState], None]

# ---------------------------------------------------------------------------
# Protocols: what this use case needs from its dependencies.
# ---------------------------------------------------------------------------


class _Prober(Protocol):
    """Probes one source (memoized per session)."""

    async def probe_source(self, source: RawSourceResult) -> ProbeResult: ...


class _Scorer(Protocol):
    def rank(
        self,
        sources: Sequence[RawSourceResult],
        probes: Mapping[str, ProbeResult],
    ) -> list[ScoredSource]: ...


class _MetricsRecorder(Protocol):
    def record_prefer(
        self,
        duration_ns: int,
        *,
        short_circuit: bool = False,
        all_failed: bool = False,
    ) -> None: ...


@dataclass(frozen=True)
class PreferOutcome:
    """Winner plus everything learned while choosing it."""

    best: RawSourceResult
    ranked: tuple[ScoredSource, ...] = ()
    probes: dict[str, ProbeResult] = field(default_factory=dict)
    all_failed: bool = False


class SourcePrefer:
    def __init__(
        self,
        *,
        prober: _Prober,
        scorer: _Scorer,
        batches: int = 2,
        metrics: _MetricsRecorder | None = None,
    ) -> None:
        self._prober = prober
        self._scorer = scorer
        self._batches = batches
        self._metrics = metrics

    async def prefer(
        self,
        sources: Sequence[RawSourceResult],
        on_progress: PreferProgressCallback | None = None,
    ) -> RawSourceResult:
        outcome = await self.prefer_with_report(sources, on_progress)
        return outcome.best

    async def prefer_with_report(
        self,
        sources: Sequence[RawSourceResult],
        on_progress: PreferProgressCallback | None = None,
    ) -> PreferOutcome:
        if not sources:
            raise ValueError("prefer() needs at least one source")

        def emit(state: PreferProgressState) -> None:
            if on_progress is not None:
                on_progress(state)

        start_ns = time.perf_counter_ns()
        total = len(sources)

        if total == 1:
            emit(
                PreferProgressState(
                    "completed",
                    70,
                    "single source, no testing needed",
                    f"using {sources[0].source_name or sources[0].source}",
                    tested_sources=1,
                    total_sources=1,
                )
            )
            self._record(start_ns, short_circuit=True)
            return PreferOutcome(best=sources[0])

        emit(
            PreferProgressState(
                "testing",
                35,
                "testing source quality",
                f"preparing to test {total} sources",
                tested_sources=0,
                total_sources=total,
            )
        )

        tested = 0

        def on_batch_start(
            index: int, batch_count: int, batch: Sequence[RawSourceResult]
        ) -> None:
            emit(
                PreferProgressState(
                    "testing",
                    35 + index / batch_count * 20,
                    f"testing batch {index + 1}/{batch_count}",
                    f"testing {len(batch)} sources",
                    tested_sources=tested,
                    total_sources=total,
                    current_source_name=", ".join(s.source_name for s in batch),
                )
            )

        def on_batch_done(
            index: int, batch_count: int, batch: Sequence[RawSourceResult]
        ) -> None:
            nonlocal tested
            tested += len(batch)
            emit(
                PreferProgressState(
                    "testing",
                    35 + (index + 1) / batch_count * 20,
                    f"batch {index + 1}/{batch_count} done",
                    f"tested {tested}/{total} sources",
                    tested_sources=tested,
                    total_sources=total,
                )
            )

        async def probe_one(source: RawSourceResult) -> ProbeResult:
            emit(
                PreferProgressState(
                    "testing",
                    35 + tested / total * 20,
                    "testing source",
                    f"probing {source.source_name or source.source}",
                    tested_sources=tested,
                    total_sources=total,
                    current_source_name=source.source_name,
                )
            )
            return await self._prober.probe_source(source)

        results = await run_in_batches(
            sources,
            probe_one,
            batches=self._batches,
            on_batch_start=on_batch_start,
            on_batch_done=on_batch_done,
        )

        probes = {
            source.key: result
            for source, result in zip(sources, results)
            if result is not None
        }
        successful = sum(1 for p in probes.values() if not p.has_error)

        if successful == 0:
            log.warning("prefer_all_probes_failed", sources=total)
            emit(
                PreferProgressState(
                    "completed",
                    70,
                    "all sources failed testing",
                    "using the first source",
                    tested_sources=0,
                    total_sources=total,
                )
            )
            self._record(start_ns, all_failed=True)
            return PreferOutcome(best=sources[0], probes=probes, all_failed=True)

        emit(
            PreferProgressState(
                "analyzing",
                65,
                "analyzing test results",
                f"{successful} sources responded",
                tested_sources=successful,
                total_sources=total,
            )
        )

        ranked = self._scorer.rank(sources, probes)
        winner = ranked[0]
        emit(
            PreferProgressState(
                "completed",
                70,
                "best source selected",
                (
                    f"{winner.source.source_name or winner.source.source}: "
                    f"{winner.probe.quality.value}, {winner.probe.load_speed}, "
                    f"{winner.probe.ping_time_ms:.0f}ms"
                ),
                tested_sources=successful,
                total_sources=total,
                current_source_name=winner.source.source_name,
            )
        )
        log.info(
            "prefer_completed",
            sources=total,
            tested=successful,
            best=winner.source.key,
            score=winner.score,
        )
        self._record(start_ns)
        return PreferOutcome(best=winner.source, ranked=tuple(ranked), probes=probes)

    def _record(
        self, start_ns: int, *, short_circuit: bool = False, all_failed: bool = False
    ) -> None:
        if self._metrics is not None:
            self._metrics.record_prefer(
                time.perf_counter_ns() - start_ns,
                short_circuit=short_circuit,
                all_failed=all_failed,
            )
