"""HLS manifest proxy with optional ad filtering.

Every URI of a served manifest is made absolute against the upstream
URL.  Nested playlists point back at this endpoint so variant and
rendition playlists get the same filtering as the master.
"""

from __future__ import annotations

from typing import Callable, cast

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from sourcarr.infrastructure.playback.hls import (
    rewrite_manifest_uris,
    select_manifest_transform,
)
from sourcarr.infrastructure.playback.manifest_fetcher import load_manifest
from sourcarr.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["manifest"])

_HLS_MEDIA_TYPE = "application/vnd.apple.mpegurl"


def _playlist_link(request: Request, ad_block: bool) -> Callable[[str], str]:
    """Build ``/manifest`` links for nested playlists of the served one."""
    endpoint = request.url_for("get_manifest")
    flag = "true" if ad_block else "false"

    def link(upstream_url: str) -> str:
        return str(endpoint.include_query_params(url=upstream_url, ad_block=flag))

    return link


@router.get("/manifest")
async def get_manifest(
    request: Request,
    url: str = Query(..., description="Upstream manifest URL."),
    ad_block: bool | None = Query(
        default=None,
        description="Strip discontinuity markers. Defaults to playback config.",
    ),
) -> Response:
    """Fetch an upstream manifest, filter it and rewrite its URIs.

    Upstream failures surface as ManifestFetchError (502).
    """
    state = cast(AppState, request.app.state)
    if ad_block is None:
        ad_block = state.config.playback.ad_block_default

    filter_ads = select_manifest_transform(ad_block)
    link = _playlist_link(request, ad_block)

    def transform(content: str) -> str:
        return rewrite_manifest_uris(filter_ads(content), url, link)

    content = await load_manifest(state.manifest_fetcher, url, transform)
    log.debug("manifest_served", url=url, ad_block=ad_block, size=len(content))
    return Response(content=content, media_type=_HLS_MEDIA_TYPE)
