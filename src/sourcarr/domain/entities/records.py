"""Persisted records keyed by ``source+id``."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PlayRecord:
    """Playback progress for one title on one source.

    ``index`` is 1-based (episode number as shown to users).
    """

    title: str
    source_name: str
    year: str
    cover: str
    index: int
    total_episodes: int
    play_time: float
    total_time: float
    save_time: float
    search_title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlayRecord:
        return cls(
            title=str(data.get("title", "")),
            source_name=str(data.get("source_name", "")),
            year=str(data.get("year", "")),
            cover=str(data.get("cover", "")),
            index=int(data.get("index", 1)),
            total_episodes=int(data.get("total_episodes", 0)),
            play_time=float(data.get("play_time", 0)),
            total_time=float(data.get("total_time", 0)),
            save_time=float(data.get("save_time", 0)),
            search_title=str(data.get("search_title", "")),
        )


@dataclass(frozen=True)
class FavoriteRecord:
    title: str
    source_name: str
    year: str
    cover: str
    total_episodes: int
    save_time: float
    search_title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FavoriteRecord:
        return cls(
            title=str(data.get("title", "")),
            source_name=str(data.get("source_name", "")),
            year=str(data.get("year", "")),
            cover=str(data.get("cover", "")),
            total_episodes=int(data.get("total_episodes", 0)),
            save_time=float(data.get("save_time", 0)),
            search_title=str(data.get("search_title", "")),
        )


@dataclass(frozen=True)
class SkipConfig:
    """Intro/outro skip settings.

    ``outro_time`` is a non-positive offset from the end of the episode
    (``-90`` means "the last 90 seconds").
    """

    enable: bool = False
    intro_time: float = 0.0
    outro_time: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.enable and self.intro_time == 0 and self.outro_time == 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkipConfig:
        return cls(
            enable=bool(data.get("enable", False)),
            intro_time=float(data.get("intro_time", 0)),
            outro_time=float(data.get("outro_time", 0)),
        )
