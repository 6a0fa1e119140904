"""httpx-backed access to HLS manifests and segment byte ranges."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog
from httpx import HTTPError, HTTPStatusError, TimeoutException

from sourcarr.domain.entities.errors import ManifestFetchError
from sourcarr.domain.ports.manifest import ManifestTransform

if TYPE_CHECKING:
    from httpx import AsyncClient

log = structlog.get_logger(__name__)

_CHUNK_SIZE = 65536


class HttpManifestFetcher:
    """Fetches manifests, samples segments and measures host latency.

    Args:
        http_client: Shared httpx.AsyncClient (injected).
        referer: Optional Referer header some CDNs require.
        max_concurrent: Max parallel upstream requests.
    """

    def __init__(
        self,
        http_client: AsyncClient,
        *,
        referer: str | None = None,
        max_concurrent: int = 20,
    ) -> None:
        self.http_client = http_client
        self._headers = {"Referer": referer} if referer else {}
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def fetch_text(self, url: str) -> str:
        """GET a text manifest. Raises httpx errors on failure/non-2xx."""
        async with self._semaphore:
            resp = await self.http_client.get(
                url, headers=self._headers, follow_redirects=True
            )
            resp.raise_for_status()
        return resp.text

    async def fetch_sample(self, url: str, max_bytes: int) -> int:
        """Stream at most ``max_bytes`` of ``url`` and return the byte count.

        A ``Range`` header is sent; servers ignoring it are cut off once
        the limit is reached.
        """
        headers = {**self._headers, "Range": f"bytes=0-{max_bytes - 1}"}
        received = 0
        async with self._semaphore:
            async with self.http_client.stream(
                "GET", url, headers=headers, follow_redirects=True
            ) as resp:
                resp.raise_for_status()
                async for chunk in resp.aiter_bytes(chunk_size=_CHUNK_SIZE):
                    received += len(chunk)
                    if received >= max_bytes:
                        break
        return min(received, max_bytes)

    async def ping(self, url: str) -> float:
        """Round-trip time of a HEAD request to ``url`` in ms (0 on failure)."""
        start = time.monotonic()
        try:
            await self.http_client.head(
                url, headers=self._headers, follow_redirects=False
            )
        except TimeoutException:
            log.debug("manifest_ping_timeout", url=url)
            return 0.0
        except HTTPError as e:
            log.debug("manifest_ping_failed", url=url, error=str(e))
            return 0.0
        return (time.monotonic() - start) * 1000


async def load_manifest(
    fetcher: HttpManifestFetcher,
    url: str,
    transform: ManifestTransform,
) -> str:
    """Fetch a manifest and apply ``transform`` before handing it out.

    Raises ``ManifestFetchError`` (kind ``network``) when the upstream
    cannot be reached or answers non-2xx.
    """
    try:
        content = await fetcher.fetch_text(url)
    except HTTPStatusError as e:
        log.warning(
            "manifest_upstream_status",
            url=url,
            status_code=e.response.status_code,
        )
        raise ManifestFetchError(
            f"upstream returned {e.response.status_code}", kind="network"
        ) from e
    except HTTPError as e:
        log.warning("manifest_upstream_error", url=url, error=str(e))
        raise ManifestFetchError(str(e) or type(e).__name__, kind="network") from e
    return transform(content)
