"""Provider aggregation API client: async httpx implementation.

Implements both ``SearchCollaborator`` and ``DetailCollaborator``.
Responses are streamed so download progress can be reported while the
body arrives.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from sourcarr.domain.entities.errors import CatalogError
from sourcarr.domain.entities.sources import RawSourceResult
from sourcarr.domain.ports.catalog import DownloadProgress
from sourcarr.infrastructure.config.schema import CatalogConfig

log = structlog.get_logger(__name__)

_CHUNK_SIZE = 16384


def parse_source_result(item: dict[str, Any]) -> RawSourceResult:
    """Build a RawSourceResult from one JSON result object.

    Raises ``ValueError`` when ``source``/``id``/``title`` are missing.
    """
    source = item.get("source")
    id_ = item.get("id")
    title = item.get("title")
    if source in (None, "") or id_ in (None, "") or title is None:
        raise ValueError(f"result lacks source/id/title: {item!r:.200}")
    episodes = item.get("episodes") or []
    if not isinstance(episodes, list):
        raise ValueError("episodes must be a list")
    return RawSourceResult(
        source=str(source),
        id=str(id_),
        title=str(title),
        year=str(item.get("year") or ""),
        poster=str(item.get("poster") or ""),
        type_name=str(item.get("type_name") or ""),
        episodes=tuple(str(e) for e in episodes),
        source_name=str(item.get("source_name") or ""),
    )


class HttpCatalogClient:
    """Async client for ``GET {search_path}?q=`` and
    ``GET {detail_path}?source=&id=``.

    Every failure (network, timeout, non-2xx, malformed JSON) is raised
    as ``CatalogError``; no retries happen here.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        config: CatalogConfig,
    ) -> None:
        self._http = http_client
        self._base_url = config.base_url.rstrip("/")
        self._search_path = config.search_path
        self._detail_path = config.detail_path
        self._search_timeout = config.search_timeout_seconds
        self._detail_timeout = config.detail_timeout_seconds

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_json(
        self,
        path: str,
        params: dict[str, str],
        *,
        timeout: float,
        on_download_progress: DownloadProgress | None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with self._http.stream(
                "GET", url, params=params, timeout=timeout
            ) as resp:
                resp.raise_for_status()
                total_header = resp.headers.get("content-length")
                total = int(total_header) if total_header else None
                body = bytearray()
                async for chunk in resp.aiter_bytes(chunk_size=_CHUNK_SIZE):
                    body.extend(chunk)
                    if on_download_progress is not None:
                        on_download_progress(len(body), total)
        except httpx.HTTPStatusError as e:
            log.warning(
                "catalog_http_error",
                path=path,
                status_code=e.response.status_code,
            )
            raise CatalogError(
                f"catalog returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            log.warning("catalog_network_error", path=path, error=str(e))
            raise CatalogError(str(e) or type(e).__name__) from e

        try:
            return json.loads(bytes(body))
        except ValueError as e:
            log.warning("catalog_malformed_body", path=path, error=str(e))
            raise CatalogError("malformed catalog response") from e

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        on_download_progress: DownloadProgress | None = None,
    ) -> list[RawSourceResult]:
        data = await self._get_json(
            self._search_path,
            {"q": query.strip()},
            timeout=self._search_timeout,
            on_download_progress=on_download_progress,
        )
        items = data.get("results") if isinstance(data, dict) else data
        if items is None:
            items = []
        if not isinstance(items, list):
            raise CatalogError("search response 'results' is not a list")

        results: list[RawSourceResult] = []
        for item in items:
            try:
                results.append(parse_source_result(item))
            except (ValueError, AttributeError) as e:
                log.debug("catalog_result_skipped", error=str(e))
        log.info("catalog_search_completed", query=query, results=len(results))
        return results

    async def fetch_detail(
        self,
        source: str,
        id: str,
        *,
        on_download_progress: DownloadProgress | None = None,
    ) -> RawSourceResult:
        data = await self._get_json(
            self._detail_path,
            {"source": source, "id": id},
            timeout=self._detail_timeout,
            on_download_progress=on_download_progress,
        )
        if not isinstance(data, dict):
            raise CatalogError("detail response is not an object")
        try:
            result = parse_source_result(data)
        except ValueError as e:
            raise CatalogError(str(e)) from e
        log.debug(
            "catalog_detail_fetched",
            source=source,
            id=id,
            episodes=result.episode_count,
        )
        return result
