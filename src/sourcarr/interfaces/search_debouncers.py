"""Per-view debounced searches.

Typing-as-you-search and rapid filter changes fire many searches from
one view; only the latest of a burst reaches the catalog.  Views that
stopped searching are forgotten by ``expire_idle``.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from sourcarr.application.use_cases.source_search import DebouncedSearch, SourceSearch

log = structlog.get_logger(__name__)


class SearchDebouncers:
    def __init__(
        self,
        search: SourceSearch,
        *,
        delay: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._search = search
        self._delay = delay
        self._clock = clock
        self._by_view: dict[str, DebouncedSearch] = {}
        self._last_used: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._by_view)

    def for_view(self, view_id: str) -> DebouncedSearch:
        debounced = self._by_view.get(view_id)
        if debounced is None:
            debounced = DebouncedSearch(self._search, delay=self._delay)
            self._by_view[view_id] = debounced
        self._last_used[view_id] = self._clock()
        return debounced

    def expire_idle(self, idle_seconds: float) -> int:
        """Cancel and drop debouncers unused for ``idle_seconds``."""
        cutoff = self._clock() - idle_seconds
        stale = [view for view, used in self._last_used.items() if used <= cutoff]
        for view_id in stale:
            self._by_view.pop(view_id).cancel()
            del self._last_used[view_id]
        if stale:
            log.debug("idle_debouncers_dropped", count=len(stale))
        return len(stale)

    def cancel_all(self) -> None:
        for debounced in self._by_view.values():
            debounced.cancel()
        self._by_view.clear()
        self._last_used.clear()
