"""Tests for HLS helpers (variant parsing, quality, speed, ad filtering)."""

from __future__ import annotations

import pytest

from sourcarr.domain.entities import VideoQuality
from sourcarr.infrastructure.playback.hls import (
    HlsVariant,
    best_variant,
    classify_quality,
    filter_ad_discontinuities,
    format_speed,
    identity_transform,
    is_master_playlist,
    media_resolution_width,
    parse_variants,
    rewrite_manifest_uris,
    segment_uris,
    select_manifest_transform,
)

_MASTER = """\
#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=854x480
480p/index.m3u8
#EXT-X-STREAM-INF:AVERAGE-BANDWIDTH=4000000,BANDWIDTH=5000000,RESOLUTION=1920x1080
1080p/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720
https://other.example.com/720p.m3u8
"""

_MEDIA = """\
#EXTM3U
#EXT-X-TARGETDURATION:6
#EXTINF:6.0,
seg-0.ts
#EXT-X-DISCONTINUITY
#EXTINF:6.0,
https://ads.example.com/ad.ts
#EXT-X-DISCONTINUITY
#EXTINF:6.0,
seg-1.ts
#EXT-X-ENDLIST"""


# ---------------------------------------------------------------------------
# Quality and speed
# ---------------------------------------------------------------------------


class TestClassifyQuality:
    @pytest.mark.parametrize(
        ("width", "expected"),
        [
            (3840, VideoQuality.UHD_4K),
            (2560, VideoQuality.QHD_2K),
            (1920, VideoQuality.FHD_1080P),
            (1280, VideoQuality.HD_720P),
            (854, VideoQuality.SD_480P),
            (640, VideoQuality.SD),
            (0, VideoQuality.UNKNOWN),
        ],
    )
    def test_width_classes(self, width: int, expected: VideoQuality) -> None:
        assert classify_quality(width) is expected

    def test_between_thresholds_rounds_down(self) -> None:
        assert classify_quality(1919) is VideoQuality.HD_720P


class TestFormatSpeed:
    def test_kilobytes_one_decimal(self) -> None:
        assert format_speed(512 * 1024) == "512.0 KB/s"

    def test_megabytes(self) -> None:
        assert format_speed(1.5 * 1024 * 1024) == "1.5 MB/s"

    def test_boundary_switches_to_mb(self) -> None:
        assert format_speed(1024 * 1024) == "1.0 MB/s"


# ---------------------------------------------------------------------------
# Playlist parsing
# ---------------------------------------------------------------------------


class TestParseVariants:
    def test_detects_master(self) -> None:
        assert is_master_playlist(_MASTER)
        assert not is_master_playlist(_MEDIA)

    def test_parses_all_variants(self) -> None:
        variants = parse_variants(_MASTER, "https://cdn.example.com/show/master.m3u8")
        assert [v.width for v in variants] == [854, 1920, 1280]
        assert variants[0].uri == "https://cdn.example.com/show/480p/index.m3u8"
        assert variants[2].uri == "https://other.example.com/720p.m3u8"

    def test_bandwidth_ignores_average(self) -> None:
        variants = parse_variants(_MASTER, "https://cdn.example.com/master.m3u8")
        assert variants[1].bandwidth == 5000000

    def test_best_variant_by_pixels(self) -> None:
        variants = parse_variants(_MASTER, "https://cdn.example.com/master.m3u8")
        best = best_variant(variants)
        assert best is not None
        assert best.width == 1920

    def test_best_variant_bandwidth_tiebreak(self) -> None:
        low = HlsVariant(uri="a", width=1280, height=720, bandwidth=1)
        high = HlsVariant(uri="b", width=1280, height=720, bandwidth=2)
        assert best_variant([low, high]) is high

    def test_best_variant_empty(self) -> None:
        assert best_variant([]) is None

    def test_segment_uris_resolved(self) -> None:
        uris = segment_uris(_MEDIA, "https://cdn.example.com/show/720p.m3u8")
        assert uris == [
            "https://cdn.example.com/show/seg-0.ts",
            "https://ads.example.com/ad.ts",
            "https://cdn.example.com/show/seg-1.ts",
        ]


# ---------------------------------------------------------------------------
# Manifest transforms
# ---------------------------------------------------------------------------


class TestMediaResolutionWidth:
    def test_untagged_media_playlist(self) -> None:
        content = "#EXTM3U\n#EXTINF:6.0,\nseg-0.ts\n"
        assert media_resolution_width(content) == 0

    def test_width_from_tag(self) -> None:
        content = (
            "#EXTM3U\n"
            "#EXT-X-MAP:URI=\"init.mp4\",RESOLUTION=1920x1080\n"
            "#EXTINF:6.0,\nseg-0.m4s\n"
        )
        assert media_resolution_width(content) == 1920

    def test_uri_lines_ignored(self) -> None:
        content = "#EXTM3U\n#EXTINF:6.0,\nseg-RESOLUTION=1920x1080.ts\n"
        assert media_resolution_width(content) == 0


class TestAdFilter:
    def test_removes_discontinuity_lines(self) -> None:
        filtered = filter_ad_discontinuities(_MEDIA)
        assert "#EXT-X-DISCONTINUITY" not in filtered
        assert filtered.count("\n") == _MEDIA.count("\n") - 2

    def test_keeps_other_lines_in_order(self) -> None:
        content = "#EXTM3U\na\n#EXT-X-DISCONTINUITY\nb\nc"
        assert filter_ad_discontinuities(content) == "#EXTM3U\na\nb\nc"

    def test_removes_lines_containing_marker(self) -> None:
        content = "x\n  #EXT-X-DISCONTINUITY-SEQUENCE:3\ny"
        assert filter_ad_discontinuities(content) == "x\ny"

    def test_idempotent(self) -> None:
        once = filter_ad_discontinuities(_MEDIA)
        assert filter_ad_discontinuities(once) == once

    def test_no_marker_is_unchanged(self) -> None:
        assert filter_ad_discontinuities("a\nb\n") == "a\nb\n"

    def test_select_transform(self) -> None:
        assert select_manifest_transform(True) is filter_ad_discontinuities
        assert select_manifest_transform(False) is identity_transform
        assert identity_transform(_MEDIA) == _MEDIA


def _proxied(url: str) -> str:
    return f"/manifest?url={url}"


class TestRewriteManifestUris:
    def test_variants_routed_through_link(self) -> None:
        rewritten = rewrite_manifest_uris(
            _MASTER, "https://cdn.example.com/v/master.m3u8", _proxied
        )
        uris = [line for line in rewritten.split("\n") if line.startswith("/")]
        assert uris == [
            "/manifest?url=https://cdn.example.com/v/480p/index.m3u8",
            "/manifest?url=https://cdn.example.com/v/1080p/index.m3u8",
            "/manifest?url=https://other.example.com/720p.m3u8",
        ]

    def test_segments_become_absolute(self) -> None:
        rewritten = rewrite_manifest_uris(
            _MEDIA, "https://cdn.example.com/v/720p/index.m3u8", _proxied
        )
        lines = rewritten.split("\n")
        assert "https://cdn.example.com/v/720p/seg-0.ts" in lines
        assert "https://ads.example.com/ad.ts" in lines
        assert lines.count("#EXT-X-DISCONTINUITY") == 2
        assert lines[-1] == "#EXT-X-ENDLIST"

    def test_key_uri_absolute_not_proxied(self) -> None:
        content = '#EXTM3U\n#EXT-X-KEY:METHOD=AES-128,URI="keys/k1.bin"\nseg.ts'
        rewritten = rewrite_manifest_uris(
            content, "https://cdn.example.com/v/index.m3u8", _proxied
        )
        assert rewritten.split("\n")[1] == (
            '#EXT-X-KEY:METHOD=AES-128,URI="https://cdn.example.com/v/keys/k1.bin"'
        )

    def test_rendition_uri_proxied(self) -> None:
        content = '#EXTM3U\n#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="a",URI="ja/a.m3u8"'
        rewritten = rewrite_manifest_uris(
            content, "https://cdn.example.com/v/master.m3u8", _proxied
        )
        assert rewritten.endswith(
            'URI="/manifest?url=https://cdn.example.com/v/ja/a.m3u8"'
        )

    def test_tags_without_uri_untouched(self) -> None:
        content = "#EXTM3U\n#EXT-X-MEDIA-SEQUENCE:7\n#EXT-X-TARGETDURATION:6\n"
        assert rewrite_manifest_uris(content, "https://x/y.m3u8", _proxied) == content
