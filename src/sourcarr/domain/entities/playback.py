"""Playback session state, player commands and session events.

The session state is a single immutable value; every transition
produces a new ``PlaybackSessionState`` via ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

from .progress import ProgressState
from .records import SkipConfig
from .sources import RawSourceResult


class SessionPhase(str, Enum):
    RESOLVING = "resolving"
    READY = "ready"
    EPISODE_CHANGING = "episode_changing"
    SOURCE_CHANGING = "source_changing"
    CLOSED = "closed"


@dataclass(frozen=True)
class InitialParams:
    """Everything the caller knows when a playback view opens.

    ``source``/``id`` are set on a direct-link refresh; ``prefer``
    explicitly requests re-running source preference even then.
    """

    title: str = ""
    source: str = ""
    id: str = ""
    year: str = ""
    search_title: str = ""
    type_name: str = ""
    prefer: bool = False

    @property
    def query_text(self) -> str:
        return self.search_title or self.title

    @property
    def has_direct_link(self) -> bool:
        return bool(self.source and self.id)


@dataclass(frozen=True)
class PlaybackSessionState:
    phase: SessionPhase = SessionPhase.RESOLVING
    current_source: str = ""
    current_id: str = ""
    current_episode_index: int = 0
    available_sources: tuple[RawSourceResult, ...] = ()
    resume_time_seconds: float | None = None
    skip_config: SkipConfig = field(default_factory=SkipConfig)
    ad_block_enabled: bool = True
    title: str = ""
    year: str = ""
    search_title: str = ""
    error: str | None = None

    @property
    def current(self) -> RawSourceResult | None:
        for result in self.available_sources:
            if result.is_same_source(self.current_source, self.current_id):
                return result
        return None

    @property
    def total_episodes(self) -> int:
        current = self.current
        return current.episode_count if current is not None else 0

    @property
    def current_episode_url(self) -> str | None:
        current = self.current
        if current is None:
            return None
        if 0 <= self.current_episode_index < current.episode_count:
            return current.episodes[self.current_episode_index]
        return None

    @property
    def is_closed(self) -> bool:
        return self.phase is SessionPhase.CLOSED


# ---------------------------------------------------------------------------
# Player adapter commands
# ---------------------------------------------------------------------------

PlayerCommandKind = Literal[
    "load",
    "seek",
    "pause",
    "play",
    "reload",
    "notice",
    "restart_load",
    "recover_media",
    "teardown",
]


@dataclass(frozen=True)
class PlayerCommand:
    """Instruction for the thin adapter that drives a concrete player."""

    kind: PlayerCommandKind
    url: str | None = None
    position: float | None = None
    message: str = ""
    ad_block: bool | None = None


# ---------------------------------------------------------------------------
# Session events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProgressEvent:
    state: ProgressState


@dataclass(frozen=True)
class PhaseChanged:
    phase: SessionPhase
    state: PlaybackSessionState


@dataclass(frozen=True)
class HistoryUpdate:
    """Canonical navigation parameters after resolution or a source switch."""

    source: str
    id: str
    title: str
    year: str
    search_title: str = ""


@dataclass(frozen=True)
class SessionError:
    message: str


SessionEvent = Union[ProgressEvent, PhaseChanged, HistoryUpdate, SessionError]
