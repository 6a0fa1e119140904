"""Tests for HttpSourceProbe and the per-session probe memo."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sourcarr.domain.entities import ProbeResult, RawSourceResult, VideoQuality
from sourcarr.infrastructure.config.schema import ProbeConfig
from sourcarr.infrastructure.metrics import PipelineMetrics
from sourcarr.infrastructure.playback.source_probe import (
    HttpSourceProbe,
    MemoizedSourceProbe,
)

_MASTER = """\
#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720
720p.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=5000000,RESOLUTION=1920x1080
1080p.m3u8
"""

_MEDIA = """\
#EXTM3U
#EXTINF:6.0,
seg-0.ts
#EXTINF:6.0,
seg-1.ts
"""


def _make_fetcher(
    pages: dict[str, str] | None = None,
    *,
    sample: int = 512 * 1024,
    ping: float = 42.0,
) -> MagicMock:
    pages = pages or {
        "https://cdn.example.com/master.m3u8": _MASTER,
        "https://cdn.example.com/1080p.m3u8": _MEDIA,
    }

    async def fetch_text(url: str) -> str:
        if url not in pages:
            request = httpx.Request("GET", url)
            raise httpx.HTTPStatusError(
                "not found",
                request=request,
                response=httpx.Response(404, request=request),
            )
        return pages[url]

    fetcher = MagicMock()
    fetcher.fetch_text = AsyncMock(side_effect=fetch_text)
    fetcher.fetch_sample = AsyncMock(return_value=sample)
    fetcher.ping = AsyncMock(return_value=ping)
    return fetcher


def _make_source(source: str = "alpha", episodes: int = 2) -> RawSourceResult:
    return RawSourceResult(
        source=source,
        id="1",
        title="Frieren",
        episodes=tuple(
            f"https://{source}.example.com/ep{n}.m3u8" for n in range(episodes)
        ),
    )


# ---------------------------------------------------------------------------
# HttpSourceProbe
# ---------------------------------------------------------------------------


class TestHttpSourceProbe:
    async def test_master_playlist_picks_best_variant(self) -> None:
        fetcher = _make_fetcher()
        probe = HttpSourceProbe(fetcher)

        result = await probe.probe("https://cdn.example.com/master.m3u8")

        assert result.has_error is False
        assert result.quality is VideoQuality.FHD_1080P
        assert result.ping_time_ms == 42.0
        assert result.load_speed.endswith(("KB/s", "MB/s"))
        fetcher.fetch_sample.assert_awaited_once_with(
            "https://cdn.example.com/seg-0.ts", 512 * 1024
        )

    async def test_media_playlist_is_unknown_quality(self) -> None:
        fetcher = _make_fetcher({"https://cdn.example.com/v.m3u8": _MEDIA})
        probe = HttpSourceProbe(fetcher)

        result = await probe.probe("https://cdn.example.com/v.m3u8")

        assert result.has_error is False
        assert result.quality is VideoQuality.UNKNOWN

    async def test_media_playlist_resolution_tag_used(self) -> None:
        tagged = _MEDIA.replace(
            "#EXTM3U\n", "#EXTM3U\n#EXT-X-MAP:URI=\"init.mp4\",RESOLUTION=1280x720\n"
        )
        fetcher = _make_fetcher({"https://cdn.example.com/v.m3u8": tagged})
        probe = HttpSourceProbe(fetcher)

        result = await probe.probe("https://cdn.example.com/v.m3u8")

        assert result.has_error is False
        assert result.quality is VideoQuality.HD_720P

    async def test_http_error_yields_failed(self) -> None:
        probe = HttpSourceProbe(_make_fetcher({}))
        result = await probe.probe("https://cdn.example.com/missing.m3u8")
        assert result == ProbeResult.failed()

    async def test_playlist_without_segments_fails(self) -> None:
        fetcher = _make_fetcher({"https://cdn.example.com/v.m3u8": "#EXTM3U\n"})
        result = await HttpSourceProbe(fetcher).probe("https://cdn.example.com/v.m3u8")
        assert result.has_error is True

    async def test_timeout_yields_failed(self) -> None:
        fetcher = _make_fetcher()

        async def slow(url: str) -> str:
            await asyncio.sleep(10)
            return _MEDIA

        fetcher.fetch_text = AsyncMock(side_effect=slow)
        probe = HttpSourceProbe(fetcher, ProbeConfig(timeout_seconds=0.05))

        result = await probe.probe("https://cdn.example.com/master.m3u8")
        assert result.has_error is True

    async def test_unexpected_error_yields_failed(self) -> None:
        fetcher = _make_fetcher()
        fetcher.fetch_sample = AsyncMock(side_effect=RuntimeError("boom"))
        result = await HttpSourceProbe(fetcher).probe(
            "https://cdn.example.com/master.m3u8"
        )
        assert result.has_error is True

    async def test_ping_disabled(self) -> None:
        fetcher = _make_fetcher()
        probe = HttpSourceProbe(fetcher, ProbeConfig(ping_enabled=False))
        result = await probe.probe("https://cdn.example.com/master.m3u8")
        assert result.ping_time_ms == 0.0
        fetcher.ping.assert_not_called()

    async def test_records_metrics(self) -> None:
        metrics = PipelineMetrics()
        probe = HttpSourceProbe(_make_fetcher({}), metrics=metrics)
        await probe.probe("https://cdn.example.com/missing.m3u8")
        snapshot = metrics.snapshot()["probe"]
        assert snapshot["probes"] == 1
        assert snapshot["errors"] == 1


# ---------------------------------------------------------------------------
# MemoizedSourceProbe
# ---------------------------------------------------------------------------


class TestMemoizedSourceProbe:
    def setup_method(self) -> None:
        self.inner = MagicMock()
        self.inner.probe = AsyncMock(
            return_value=ProbeResult(quality=VideoQuality.HD_720P)
        )
        self.memo = MemoizedSourceProbe(self.inner)

    async def test_probes_second_episode(self) -> None:
        source = _make_source(episodes=3)
        await self.memo.probe_source(source)
        self.inner.probe.assert_awaited_once_with("https://alpha.example.com/ep1.m3u8")

    async def test_result_is_memoized(self) -> None:
        source = _make_source()
        first = await self.memo.probe_source(source)
        second = await self.memo.probe_source(source)
        assert first is second
        assert self.inner.probe.await_count == 1
        assert self.memo.has(source.key)
        assert self.memo.get(source.key) is first

    async def test_no_episodes_is_failed_without_probing(self) -> None:
        source = _make_source(episodes=0)
        result = await self.memo.probe_source(source)
        assert result.has_error is True
        self.inner.probe.assert_not_called()
        assert self.memo.has(source.key)

    async def test_concurrent_requests_coalesce(self) -> None:
        gate = asyncio.Event()

        async def slow_probe(url: str) -> ProbeResult:
            await gate.wait()
            return ProbeResult(quality=VideoQuality.UHD_4K)

        self.inner.probe = AsyncMock(side_effect=slow_probe)
        source = _make_source()

        first = asyncio.create_task(self.memo.probe_source(source))
        second = asyncio.create_task(self.memo.probe_source(source))
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(first, second)

        assert results[0] == results[1]
        assert self.inner.probe.await_count == 1

    async def test_failed_probe_is_memoized(self) -> None:
        self.inner.probe = AsyncMock(return_value=ProbeResult.failed())
        source = _make_source()
        await self.memo.probe_source(source)
        await self.memo.probe_source(source)
        assert self.inner.probe.await_count == 1

    async def test_aclose_cancels_inflight(self) -> None:
        async def never(url: str) -> ProbeResult:
            await asyncio.sleep(60)
            return ProbeResult()

        self.inner.probe = AsyncMock(side_effect=never)
        task = asyncio.create_task(self.memo.probe_source(_make_source()))
        await asyncio.sleep(0)

        await self.memo.aclose()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert self.memo.snapshot() == {}
