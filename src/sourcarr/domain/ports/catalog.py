"""Ports for the provider search and detail collaborators."""

from __future__ import annotations

from typing import Callable, Optional, Protocol, runtime_checkable

from sourcarr.domain.entities.sources import RawSourceResult

# (bytes_loaded, bytes_total or None when the response has no length)
DownloadProgress = Callable[[int, Optional[int]], None]


@runtime_checkable
class SearchCollaborator(Protocol):
    """Single round-trip search across all configured providers."""

    async def search(
        self,
        query: str,
        *,
        on_download_progress: DownloadProgress | None = None,
    ) -> list[RawSourceResult]: ...


@runtime_checkable
class DetailCollaborator(Protocol):
    """Fetch one provider's result by ``source``/``id``.

    May fail when the id is stale or was removed upstream.
    """

    async def fetch_detail(
        self,
        source: str,
        id: str,
        *,
        on_download_progress: DownloadProgress | None = None,
    ) -> RawSourceResult: ...
