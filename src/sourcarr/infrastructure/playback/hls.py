"""HLS manifest helpers: variant parsing, quality classification and
line-oriented manifest transforms.

Everything here is pure text processing; fetching lives in
``manifest_fetcher``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urljoin, urlparse

from sourcarr.domain.entities.sources import VideoQuality
from sourcarr.domain.ports.manifest import ManifestTransform

DISCONTINUITY_MARKER = "#EXT-X-DISCONTINUITY"

_STREAM_INF = "#EXT-X-STREAM-INF"
_RESOLUTION_RE = re.compile(r"RESOLUTION=(\d+)x(\d+)", re.IGNORECASE)
_BANDWIDTH_RE = re.compile(r"(?<![-\w])BANDWIDTH=(\d+)", re.IGNORECASE)
_URI_ATTR_RE = re.compile(r'URI="([^"]*)"')
# Tags whose URI attribute points at another playlist.
_NESTED_PLAYLIST_TAGS = ("#EXT-X-MEDIA:", "#EXT-X-I-FRAME-STREAM-INF")

# (min width, quality), checked top-down.
_WIDTH_CLASSES: tuple[tuple[int, VideoQuality], ...] = (
    (3840, VideoQuality.UHD_4K),
    (2560, VideoQuality.QHD_2K),
    (1920, VideoQuality.FHD_1080P),
    (1280, VideoQuality.HD_720P),
    (854, VideoQuality.SD_480P),
)


@dataclass(frozen=True)
class HlsVariant:
    """One ``#EXT-X-STREAM-INF`` entry of a master playlist."""

    uri: str
    width: int = 0
    height: int = 0
    bandwidth: int = 0

    @property
    def pixels(self) -> int:
        return self.width * self.height


def classify_quality(width: int) -> VideoQuality:
    """Map a frame width to its resolution class.

    >>> classify_quality(1920)
    <VideoQuality.FHD_1080P: '1080p'>
    """
    if width <= 0:
        return VideoQuality.UNKNOWN
    for min_width, quality in _WIDTH_CLASSES:
        if width >= min_width:
            return quality
    return VideoQuality.SD


def format_speed(bytes_per_sec: float) -> str:
    """Human-readable throughput: KB/s below 1024 KB/s, MB/s above."""
    kbps = bytes_per_sec / 1024
    if kbps >= 1024:
        return f"{kbps / 1024:.1f} MB/s"
    return f"{kbps:.1f} KB/s"


def _uri_lines(content: str) -> list[str]:
    return [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def is_master_playlist(content: str) -> bool:
    return _STREAM_INF in content


def media_resolution_width(content: str) -> int:
    """Frame width from any tag carrying ``RESOLUTION=``, 0 if none."""
    for line in content.splitlines():
        if not line.startswith("#"):
            continue
        res = _RESOLUTION_RE.search(line)
        if res:
            return int(res.group(1))
    return 0


def parse_variants(content: str, base_url: str) -> list[HlsVariant]:
    """Parse the stream variants of a master playlist.

    Each ``#EXT-X-STREAM-INF`` tag applies to the next URI line.
    Relative URIs are resolved against ``base_url``.
    """
    variants: list[HlsVariant] = []
    pending: str | None = None
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith(_STREAM_INF):
            pending = line
            continue
        if line.startswith("#"):
            continue
        if pending is None:
            continue
        width = height = bandwidth = 0
        res = _RESOLUTION_RE.search(pending)
        if res:
            width, height = int(res.group(1)), int(res.group(2))
        bw = _BANDWIDTH_RE.search(pending)
        if bw:
            bandwidth = int(bw.group(1))
        variants.append(
            HlsVariant(
                uri=urljoin(base_url, line),
                width=width,
                height=height,
                bandwidth=bandwidth,
            )
        )
        pending = None
    return variants


def best_variant(variants: list[HlsVariant]) -> HlsVariant | None:
    """Variant with the greatest pixel count (bandwidth breaks ties)."""
    if not variants:
        return None
    return max(variants, key=lambda v: (v.pixels, v.bandwidth))


def segment_uris(content: str, base_url: str) -> list[str]:
    """Absolute segment URIs of a media playlist, in playlist order."""
    return [urljoin(base_url, uri) for uri in _uri_lines(content)]


# ---------------------------------------------------------------------------
# Manifest transforms
# ---------------------------------------------------------------------------


def filter_ad_discontinuities(content: str) -> str:
    """Drop every line containing a discontinuity marker.

    All other lines keep their original order.
    """
    return "\n".join(
        line for line in content.split("\n") if DISCONTINUITY_MARKER not in line
    )


def identity_transform(content: str) -> str:
    return content


def select_manifest_transform(ad_block: bool) -> ManifestTransform:
    return filter_ad_discontinuities if ad_block else identity_transform


def _is_playlist_uri(url: str) -> bool:
    return urlparse(url).path.lower().endswith((".m3u8", ".m3u"))


def rewrite_manifest_uris(
    content: str, base_url: str, playlist_link: Callable[[str], str]
) -> str:
    """Resolve every URI of a manifest against ``base_url``.

    Segments, keys and init sections become absolute upstream URLs.
    Nested playlists (variant lines, ``#EXT-X-MEDIA`` renditions and any
    ``.m3u8`` URI) are passed through ``playlist_link`` so the player
    requests them through the same transform again.
    """
    out: list[str] = []
    variant_pending = False
    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped:
            out.append(line)
            continue
        if stripped.startswith("#"):
            if stripped.startswith(_STREAM_INF):
                variant_pending = True
            nested = stripped.startswith(_NESTED_PLAYLIST_TAGS)

            def _attr(match: re.Match[str], nested: bool = nested) -> str:
                absolute = urljoin(base_url, match.group(1))
                if nested or _is_playlist_uri(absolute):
                    absolute = playlist_link(absolute)
                return f'URI="{absolute}"'

            out.append(_URI_ATTR_RE.sub(_attr, line))
            continue
        absolute = urljoin(base_url, stripped)
        if variant_pending or _is_playlist_uri(absolute):
            absolute = playlist_link(absolute)
        out.append(absolute)
        variant_pending = False
    return "\n".join(out)
