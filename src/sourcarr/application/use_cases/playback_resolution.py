"""Entry resolution of a playback session.

Two paths:

(a) Direct-link refresh, when ``source``/``id`` are known: fetch that
    detail, search its title for sibling sources, keep the same-work
    siblings and make sure the direct source is among them.  A failed
    detail fetch falls back to (b), preferring the requested source.
(b) Fresh search: search the query text, keep the same-work results,
    then either run SourcePrefer (when enabled and no explicit source
    was requested, or re-preference was requested) or take the first.

Afterwards the persisted play record and skip config of the chosen
source are loaded.  Their failures are logged and ignored.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

from sourcarr.application.use_cases.source_prefer import (
    PreferOutcome,
    PreferProgressCallback,
)
from sourcarr.application.use_cases.source_search import ProgressCallback
from sourcarr.domain.entities.errors import (
    CatalogError,
    MissingParametersError,
    NotFoundError,
)
from sourcarr.domain.entities.playback import InitialParams
from sourcarr.domain.entities.progress import PreferProgressState
from sourcarr.domain.entities.records import PlayRecord, SkipConfig
from sourcarr.domain.entities.sources import CanonicalQuery, RawSourceResult
from sourcarr.domain.ports.persistence import PersistenceCollaborator

log = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Protocols: what the resolver needs from its collaborators.
# ---------------------------------------------------------------------------


class _Search(Protocol):
    async def search(
        self, query: str, on_progress: ProgressCallback | None = None
    ) -> list[RawSourceResult]: ...

    async def fetch_detail(
        self, source: str, id: str, on_progress: ProgressCallback | None = None
    ) -> RawSourceResult: ...


class _Matcher(Protocol):
    def match_same_work(
        self,
        canonical: CanonicalQuery,
        candidates: Sequence[RawSourceResult],
    ) -> list[RawSourceResult]: ...


class _Prefer(Protocol):
    async def prefer_with_report(
        self,
        sources: Sequence[RawSourceResult],
        on_progress: PreferProgressCallback | None = None,
    ) -> PreferOutcome: ...


@dataclass(frozen=True)
class ResolvedPlayback:
    sources: tuple[RawSourceResult, ...]
    current: RawSourceResult
    episode_index: int = 0
    resume_time: float | None = None
    skip_config: SkipConfig | None = None
    prefer_outcome: PreferOutcome | None = None


def _find(
    sources: Sequence[RawSourceResult], source: str, id: str
) -> RawSourceResult | None:
    return next((s for s in sources if s.is_same_source(source, id)), None)


class PlaybackResolver:
    def __init__(
        self,
        *,
        search: _Search,
        matcher: _Matcher,
        prefer: _Prefer,
        persistence: PersistenceCollaborator,
        prefer_enabled: bool = True,
    ) -> None:
        self._search = search
        self._matcher = matcher
        self._prefer = prefer
        self._persistence = persistence
        self._prefer_enabled = prefer_enabled

    async def resolve(
        self,
        params: InitialParams,
        on_progress: ProgressCallback | None = None,
    ) -> ResolvedPlayback:
        """Resolve ``params`` into a candidate set and a current source.

        Raises:
            MissingParametersError: nothing to resolve from.
            NotFoundError: the search returned no results.
            CatalogError: the fresh search itself failed.
        """
        if not (params.source or params.id or params.title or params.search_title):
            raise MissingParametersError()

        if params.has_direct_link and not params.prefer:
            try:
                sources, current = await self._resolve_direct(params, on_progress)
                outcome = None
            except CatalogError as e:
                log.info(
                    "direct_link_detail_failed",
                    source=params.source,
                    id=params.id,
                    error=str(e),
                )
                sources, current, outcome = await self._resolve_search(
                    params, on_progress
                )
        else:
            sources, current, outcome = await self._resolve_search(params, on_progress)

        episode_index, resume = await self._restore_progress(current)
        skip_config = await self._load_skip_config(current)

        log.info(
            "playback_resolved",
            source=current.source,
            id=current.id,
            candidates=len(sources),
            episode_index=episode_index,
            resume=resume,
        )
        return ResolvedPlayback(
            sources=tuple(sources),
            current=current,
            episode_index=episode_index,
            resume_time=resume,
            skip_config=skip_config,
            prefer_outcome=outcome,
        )

    # ------------------------------------------------------------------
    # Path (a): direct-link refresh
    # ------------------------------------------------------------------

    async def _resolve_direct(
        self,
        params: InitialParams,
        on_progress: ProgressCallback | None,
    ) -> tuple[list[RawSourceResult], RawSourceResult]:
        detail = await self._search.fetch_detail(params.source, params.id, on_progress)

        query = params.search_title or detail.title
        try:
            siblings = await self._search.search(query, on_progress)
        except CatalogError as e:
            log.info("sibling_search_failed", query=query, error=str(e))
            siblings = []

        if not siblings:
            return [detail], detail

        canonical = CanonicalQuery.from_result(detail)
        matched = self._matcher.match_same_work(canonical, siblings)

        found = _find(matched, detail.source, detail.id)
        if found is None:
            return [detail, *matched], detail
        return matched, found

    # ------------------------------------------------------------------
    # Path (b): fresh search
    # ------------------------------------------------------------------

    async def _resolve_search(
        self,
        params: InitialParams,
        on_progress: ProgressCallback | None,
    ) -> tuple[list[RawSourceResult], RawSourceResult, PreferOutcome | None]:
        query = params.query_text
        if not query:
            raise MissingParametersError()

        results = await self._search.search(query, on_progress)
        if not results:
            raise NotFoundError()

        canonical = CanonicalQuery(
            title=params.title or params.search_title,
            year=params.year or None,
            origin_source=params.source or None,
            origin_id=params.id or None,
        )
        matched = self._matcher.match_same_work(canonical, results)

        need_prefer = self._prefer_enabled and (
            not params.has_direct_link or params.prefer
        )
        if need_prefer:

            def _forward(state: PreferProgressState) -> None:
                if on_progress is not None:
                    on_progress(state.as_progress())

            outcome = await self._prefer.prefer_with_report(matched, _forward)
            return matched, outcome.best, outcome

        if params.has_direct_link:
            requested = _find(matched, params.source, params.id)
            if requested is not None:
                return matched, requested, None
        return matched, matched[0], None

    # ------------------------------------------------------------------
    # Persisted state
    # ------------------------------------------------------------------

    async def _restore_progress(
        self, current: RawSourceResult
    ) -> tuple[int, float | None]:
        try:
            record: PlayRecord | None = await self._persistence.get_play_record(
                current.source, current.id
            )
        except Exception as e:  # noqa: BLE001
            log.warning(
                "play_record_load_failed", key=current.key, error=str(e)
            )
            return 0, None
        if record is None:
            return 0, None

        index = record.index - 1
        if not 0 <= index < current.episode_count:
            return 0, None
        resume = record.play_time if record.play_time > 0 else None
        return index, resume

    async def _load_skip_config(self, current: RawSourceResult) -> SkipConfig | None:
        try:
            return await self._persistence.get_skip_config(current.source, current.id)
        except Exception as e:  # noqa: BLE001
            log.warning("skip_config_load_failed", key=current.key, error=str(e))
            return None

