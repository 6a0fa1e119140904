"""Speed test for the source-switch panel.

Only sources without a result in the session's probe memo are probed,
using the same two-batch fan-out as SourcePrefer.  Since SourcePrefer
probes through that memo too, nothing is probed twice per session.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import structlog

from sourcarr.application.concurrency import run_in_batches
from sourcarr.domain.entities.sources import ProbeResult, RawSourceResult

log = structlog.get_logger(__name__)


class _ProbeMemo(Protocol):
    def get(self, key: str) -> ProbeResult | None: ...

    def has(self, key: str) -> bool: ...

    async def probe_source(self, source: RawSourceResult) -> ProbeResult: ...


class SourceSelector:
    def __init__(self, memo: _ProbeMemo, *, batches: int = 2) -> None:
        self._memo = memo
        self._batches = batches

    def pending(self, sources: Sequence[RawSourceResult]) -> list[RawSourceResult]:
        seen: set[str] = set()
        out = []
        for source in sources:
            if source.key in seen or self._memo.has(source.key):
                continue
            seen.add(source.key)
            out.append(source)
        return out

    async def speed_test(
        self, sources: Sequence[RawSourceResult]
    ) -> dict[str, ProbeResult]:
        """Probe untested sources; return every known result keyed by ``source+id``."""
        pending = self.pending(sources)
        if pending:
            log.info(
                "speed_test_started",
                pending=len(pending),
                already_tested=len(sources) - len(pending),
            )
            await run_in_batches(
                pending, self._memo.probe_source, batches=self._batches
            )

        results: dict[str, ProbeResult] = {}
        for source in sources:
            probe = self._memo.get(source.key)
            if probe is not None:
                results[source.key] = probe
        return results
