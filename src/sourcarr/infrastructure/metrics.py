"""Zero-impact in-memory pipeline metrics.

Plain counters manipulated inside the single-threaded event loop, no
locks, no I/O.  ``time.perf_counter_ns()`` is used for timing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


def _avg_ms(total_ns: int, count: int) -> float:
    if not count:
        return 0.0
    return round(total_ns / count / 1_000_000, 1)


@dataclass
class SearchStats:
    searches: int = 0
    failures: int = 0
    total_results: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        return {
            "searches": self.searches,
            "failures": self.failures,
            "total_results": self.total_results,
            "avg_duration_ms": _avg_ms(self.total_duration_ns, self.searches),
        }


@dataclass
class ProbeStats:
    probes: int = 0
    errors: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        return {
            "probes": self.probes,
            "errors": self.errors,
            "avg_duration_ms": _avg_ms(self.total_duration_ns, self.probes),
        }


@dataclass
class PreferStats:
    runs: int = 0
    short_circuits: int = 0
    all_failed: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        return {
            "runs": self.runs,
            "short_circuits": self.short_circuits,
            "all_failed": self.all_failed,
            "avg_duration_ms": _avg_ms(self.total_duration_ns, self.runs),
        }


@dataclass
class PipelineMetrics:
    """Central in-memory metrics for search, probe and prefer runs."""

    _search: SearchStats = field(default_factory=SearchStats)
    _probe: ProbeStats = field(default_factory=ProbeStats)
    _prefer: PreferStats = field(default_factory=PreferStats)
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_search(
        self, duration_ns: int, result_count: int, *, success: bool
    ) -> None:
        self._search.searches += 1
        self._search.total_duration_ns += duration_ns
        if success:
            self._search.total_results += result_count
        else:
            self._search.failures += 1

    def record_probe(self, duration_ns: int, *, has_error: bool) -> None:
        self._probe.probes += 1
        self._probe.total_duration_ns += duration_ns
        if has_error:
            self._probe.errors += 1

    def record_prefer(
        self,
        duration_ns: int,
        *,
        short_circuit: bool = False,
        all_failed: bool = False,
    ) -> None:
        self._prefer.runs += 1
        self._prefer.total_duration_ns += duration_ns
        if short_circuit:
            self._prefer.short_circuits += 1
        if all_failed:
            self._prefer.all_failed += 1

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable snapshot of all metrics."""
        uptime_ns = time.perf_counter_ns() - self._start_ns
        return {
            "uptime_seconds": round(uptime_ns / 1_000_000_000, 1),
            "search": self._search.snapshot(),
            "probe": self._probe.snapshot(),
            "prefer": self._prefer.snapshot(),
        }
