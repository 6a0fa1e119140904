"""Domain entities for provider search results and stream probing.

Pure value objects without I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


def storage_key(source: str, id: str) -> str:
    """Stable composite key used by every persisted record: ``source+id``."""
    return f"{source}+{id}"


class VideoQuality(str, Enum):
    """Effective resolution class of a probed stream."""

    UHD_4K = "4K"
    QHD_2K = "2K"
    FHD_1080P = "1080p"
    HD_720P = "720p"
    SD_480P = "480p"
    SD = "SD"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RawSourceResult:
    """One provider's answer for a title (search hit or detail lookup).

    ``episodes`` holds one manifest URL per episode; a single entry
    denotes a movie.
    """

    source: str
    id: str
    title: str
    year: str = ""
    poster: str = ""
    type_name: str = ""
    episodes: tuple[str, ...] = ()
    source_name: str = ""

    @property
    def key(self) -> str:
        return storage_key(self.source, self.id)

    @property
    def episode_count(self) -> int:
        return len(self.episodes)

    @property
    def is_movie(self) -> bool:
        return len(self.episodes) == 1

    def is_same_source(self, source: str, id: str) -> bool:
        return self.source == source and self.id == id

    def probe_url(self) -> str | None:
        """Episode URL used for quality probing.

        The second episode is preferred (first episodes are often
        re-uploaded trailers on some providers), falling back to the
        first.  Returns ``None`` when there is nothing to probe.
        """
        if not self.episodes:
            return None
        if len(self.episodes) > 1:
            return self.episodes[1]
        return self.episodes[0]


@dataclass(frozen=True)
class CanonicalQuery:
    """The identity a user is trying to resolve to.

    Derived either from a previously fetched result (page refresh) or
    from raw search text.  ``origin_source``/``origin_id`` are set when
    the query came from a concrete provider result.
    """

    title: str
    year: str | None = None
    episode_count_hint: int | None = None
    origin_source: str | None = None
    origin_id: str | None = None

    @classmethod
    def from_result(cls, result: RawSourceResult) -> CanonicalQuery:
        return cls(
            title=result.title,
            year=result.year,
            episode_count_hint=result.episode_count,
            origin_source=result.source,
            origin_id=result.id,
        )

    def is_origin(self, result: RawSourceResult) -> bool:
        if self.origin_source is None or self.origin_id is None:
            return False
        return result.is_same_source(self.origin_source, self.origin_id)


UNKNOWN_SPEED = "unknown"


@dataclass(frozen=True)
class ProbeResult:
    """Measured stream characteristics for one source.

    ``load_speed`` is the human-readable throughput (``"1.5 MB/s"``,
    ``"820.0 KB/s"``) or ``"unknown"``; ``bytes_per_sec`` carries the raw
    measurement when one exists.
    """

    quality: VideoQuality = VideoQuality.UNKNOWN
    load_speed: str = UNKNOWN_SPEED
    ping_time_ms: float = 0.0
    has_error: bool = False
    bytes_per_sec: float | None = None

    @classmethod
    def failed(cls) -> ProbeResult:
        return cls(
            quality=VideoQuality.UNKNOWN,
            load_speed=UNKNOWN_SPEED,
            ping_time_ms=0.0,
            has_error=True,
        )


@dataclass(frozen=True)
class ScoredSource:
    """A probed source together with its composite preference score."""

    source: RawSourceResult
    probe: ProbeResult
    score: float
