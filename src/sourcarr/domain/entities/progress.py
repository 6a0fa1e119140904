"""Progress snapshots reported while a session resolves."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ProgressStage = Literal["searching", "preferring", "fetching", "ready", "idle"]
PreferStage = Literal["testing", "analyzing", "completed", "idle"]


@dataclass(frozen=True)
class ProgressState:
    """Overall pipeline progress on a 0-100 scale.

    Search occupies [0, 30], preference [35, 70], detail fetching
    [70, 90] and ``ready`` is always 100.
    """

    stage: ProgressStage
    progress: float
    message: str = ""
    detail: str = ""
    estimated_time: float | None = None


@dataclass(frozen=True)
class PreferProgressState:
    """Progress of one SourcePrefer run (range [35, 70])."""

    stage: PreferStage
    progress: float
    message: str = ""
    detail: str = ""
    tested_sources: int = 0
    total_sources: int = 0
    current_source_name: str = ""

    def as_progress(self) -> ProgressState:
        """Project onto the overall pipeline progress stream."""
        return ProgressState(
            stage="preferring" if self.stage != "idle" else "idle",
            progress=self.progress,
            message=self.message,
            detail=self.detail,
        )
