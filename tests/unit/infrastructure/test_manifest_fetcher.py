"""Tests for manifest/segment fetching over httpx."""

from __future__ import annotations

import httpx
import pytest
import respx

from sourcarr.domain.entities import ManifestFetchError
from sourcarr.infrastructure.playback.hls import filter_ad_discontinuities
from sourcarr.infrastructure.playback.manifest_fetcher import (
    HttpManifestFetcher,
    load_manifest,
)

_URL = "https://cdn.example.com/show/index.m3u8"
_MANIFEST = "#EXTM3U\n#EXTINF:6,\na.ts\n#EXT-X-DISCONTINUITY\n#EXTINF:6,\nb.ts"


class TestFetchText:
    @respx.mock
    async def test_returns_body_with_referer(self) -> None:
        route = respx.get(_URL).mock(return_value=httpx.Response(200, text=_MANIFEST))
        async with httpx.AsyncClient() as http:
            fetcher = HttpManifestFetcher(http, referer="https://site.example.com/")
            assert await fetcher.fetch_text(_URL) == _MANIFEST
        assert route.calls.last.request.headers["Referer"] == "https://site.example.com/"

    @respx.mock
    async def test_non_2xx_raises(self) -> None:
        respx.get(_URL).mock(return_value=httpx.Response(404))
        async with httpx.AsyncClient() as http:
            with pytest.raises(httpx.HTTPStatusError):
                await HttpManifestFetcher(http).fetch_text(_URL)


class TestFetchSample:
    @respx.mock
    async def test_sends_range_and_caps(self) -> None:
        seg = "https://cdn.example.com/show/a.ts"
        route = respx.get(seg).mock(
            return_value=httpx.Response(200, content=b"x" * 4096)
        )
        async with httpx.AsyncClient() as http:
            received = await HttpManifestFetcher(http).fetch_sample(seg, 1024)

        assert received == 1024
        assert route.calls.last.request.headers["Range"] == "bytes=0-1023"

    @respx.mock
    async def test_short_body(self) -> None:
        seg = "https://cdn.example.com/show/a.ts"
        respx.get(seg).mock(return_value=httpx.Response(206, content=b"x" * 100))
        async with httpx.AsyncClient() as http:
            assert await HttpManifestFetcher(http).fetch_sample(seg, 1024) == 100


class TestPing:
    @respx.mock
    async def test_success_returns_elapsed(self) -> None:
        respx.head(_URL).mock(return_value=httpx.Response(200))
        async with httpx.AsyncClient() as http:
            assert await HttpManifestFetcher(http).ping(_URL) >= 0.0

    @respx.mock
    async def test_failure_returns_zero(self) -> None:
        respx.head(_URL).mock(side_effect=httpx.ConnectError("down"))
        async with httpx.AsyncClient() as http:
            assert await HttpManifestFetcher(http).ping(_URL) == 0.0

    @respx.mock
    async def test_timeout_returns_zero(self) -> None:
        respx.head(_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        async with httpx.AsyncClient() as http:
            assert await HttpManifestFetcher(http).ping(_URL) == 0.0


class TestLoadManifest:
    @respx.mock
    async def test_applies_transform(self) -> None:
        respx.get(_URL).mock(return_value=httpx.Response(200, text=_MANIFEST))
        async with httpx.AsyncClient() as http:
            content = await load_manifest(
                HttpManifestFetcher(http), _URL, filter_ad_discontinuities
            )
        assert "#EXT-X-DISCONTINUITY" not in content
        assert content.endswith("b.ts")

    @respx.mock
    async def test_upstream_status_is_network_error(self) -> None:
        respx.get(_URL).mock(return_value=httpx.Response(502))
        async with httpx.AsyncClient() as http:
            with pytest.raises(ManifestFetchError) as exc_info:
                await load_manifest(HttpManifestFetcher(http), _URL, str)
        assert exc_info.value.kind == "network"

    @respx.mock
    async def test_connect_error_is_network_error(self) -> None:
        respx.get(_URL).mock(side_effect=httpx.ConnectError("refused"))
        async with httpx.AsyncClient() as http:
            with pytest.raises(ManifestFetchError):
                await load_manifest(HttpManifestFetcher(http), _URL, str)
