"""Shared fixtures for integration tests.

These tests use the real composition root (cache, catalog client,
manifest fetcher, probes, session registry) with mocked HTTP via respx.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from sourcarr.infrastructure.config.schema import AppConfig

CATALOG_URL = "http://catalog.test"

ALPHA_ITEM = {
    "source": "alpha",
    "id": "1",
    "title": "Frieren",
    "year": "2023",
    "poster": "https://img.test/frieren.jpg",
    "source_name": "Alpha",
    "episodes": [f"https://alpha.cdn.test/1/ep{n}/index.m3u8" for n in (1, 2, 3)],
}

BETA_ITEM = {
    "source": "beta",
    "id": "2",
    "title": "Frieren",
    "year": "2023",
    "source_name": "Beta",
    "episodes": [f"https://beta.cdn.test/2/ep{n}.m3u8" for n in (1, 2, 3)],
}

# Same title, different work: must never be offered as an alternative.
SPINOFF_ITEM = {
    "source": "gamma",
    "id": "7",
    "title": "Frieren Mini",
    "year": "2023",
    "source_name": "Gamma",
    "episodes": ["https://gamma.cdn.test/7/ep1.m3u8"],
}

MASTER_PLAYLIST = (
    "#EXTM3U\n"
    "#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360\n"
    "lo/index.m3u8\n"
    "#EXT-X-STREAM-INF:BANDWIDTH=5000000,RESOLUTION=1920x1080\n"
    "hi/index.m3u8\n"
)

MEDIA_PLAYLIST = (
    "#EXTM3U\n"
    "#EXT-X-TARGETDURATION:4\n"
    "#EXTINF:4,\n"
    "seg0.ts\n"
    "#EXT-X-DISCONTINUITY\n"
    "#EXTINF:4,\n"
    "ad0.ts\n"
    "#EXT-X-ENDLIST\n"
)


def _cdn(request: httpx.Request) -> httpx.Response:
    """Alpha serves master playlists, beta bare media playlists."""
    path = request.url.path
    if request.method == "HEAD":
        return httpx.Response(200)
    if path.endswith(".ts"):
        return httpx.Response(200, content=b"\x47" * 8192)
    if request.url.host == "alpha.cdn.test" and path.endswith("/index.m3u8"):
        if "/hi/" in path or "/lo/" in path:
            return httpx.Response(200, text=MEDIA_PLAYLIST)
        return httpx.Response(200, text=MASTER_PLAYLIST)
    return httpx.Response(200, text=MEDIA_PLAYLIST)


@pytest.fixture()
def app_config() -> AppConfig:
    """In-memory cache, fast settle, catalog pointed at the mock."""
    return AppConfig.model_validate(
        {
            "catalog": {"base_url": CATALOG_URL},
            "playback": {"episode_change_settle_seconds": 0.01},
        }
    )


@pytest.fixture()
def respx_mock() -> respx.MockRouter:
    """Explicit respx mock router for request interception."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture()
def catalog_routes(respx_mock: respx.MockRouter) -> dict[str, respx.Route]:
    """Catalog search/detail plus the three provider CDNs."""
    routes = {
        "search": respx_mock.get(f"{CATALOG_URL}/api/search").mock(
            return_value=httpx.Response(
                200, json={"results": [BETA_ITEM, ALPHA_ITEM, SPINOFF_ITEM]}
            )
        ),
        "detail": respx_mock.get(f"{CATALOG_URL}/api/detail").mock(
            return_value=httpx.Response(200, json=ALPHA_ITEM)
        ),
    }
    for host in ("alpha.cdn.test", "beta.cdn.test", "gamma.cdn.test"):
        routes[host] = respx_mock.route(host=host).mock(side_effect=_cdn)
    return routes
