"""Composite scoring of probed sources.

Scores sources by resolution, throughput and latency.
All weights and ceilings come from PreferConfig.
"""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from sourcarr.domain.entities.sources import (
    ProbeResult,
    RawSourceResult,
    ScoredSource,
    VideoQuality,
)
from sourcarr.infrastructure.config.schema import PreferConfig

_SPEED_RE = re.compile(r"^([\d.]+)\s*(KB/s|MB/s)$")


class SourceScorer:
    """Score formula (each factor 0-100):

        quality * 0.4 + speed * 0.4 + ping * 0.2   (default weights)

    With default config: 720p at 2048 KB/s and 50 ms (83.5) beats 1080p
    at 1024 KB/s and 100 ms (69.0).  Throughput matters as much as
    resolution.
    """

    def __init__(self, config: PreferConfig | None = None) -> None:
        config = config or PreferConfig()
        self._quality_scores = config.quality_scores
        self._quality_weight = config.quality_weight
        self._speed_weight = config.speed_weight
        self._ping_weight = config.ping_weight
        self._speed_ceiling_kbps = config.speed_ceiling_kbps
        self._ping_ceiling_ms = config.ping_ceiling_ms
        self._unknown_speed_score = config.unknown_speed_score

    def quality_score(self, quality: VideoQuality | str) -> float:
        key = quality.value if isinstance(quality, VideoQuality) else quality
        return float(self._quality_scores.get(key, 0))

    def speed_score(self, load_speed: str) -> float:
        match = _SPEED_RE.match(load_speed.strip())
        if match is None:
            return self._unknown_speed_score
        try:
            value = float(match.group(1))
        except ValueError:
            return self._unknown_speed_score
        kbps = value * 1024 if match.group(2) == "MB/s" else value
        return min(kbps / self._speed_ceiling_kbps, 1.0) * 100

    def ping_score(self, ping_time_ms: float) -> float:
        if ping_time_ms <= 0:
            return 0.0
        return max(0.0, 1 - ping_time_ms / self._ping_ceiling_ms) * 100

    def score(self, probe: ProbeResult) -> float:
        """Weighted score for a single probe, rounded to two decimals."""
        total = (
            self.quality_score(probe.quality) * self._quality_weight
            + self.speed_score(probe.load_speed) * self._speed_weight
            + self.ping_score(probe.ping_time_ms) * self._ping_weight
        )
        return round(total, 2)

    def rank(
        self,
        sources: Sequence[RawSourceResult],
        probes: Mapping[str, ProbeResult],
    ) -> list[ScoredSource]:
        """Score every successfully probed source, best first.

        Sources without a probe result or with ``has_error`` are left out.
        Ties keep the input order.  Returns a new list.
        """
        scored = []
        for source in sources:
            probe = probes.get(source.key)
            if probe is None or probe.has_error:
                continue
            scored.append(
                ScoredSource(source=source, probe=probe, score=self.score(probe))
            )
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored
