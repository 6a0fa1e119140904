"""Same-work matching of provider results.

Pure transformation logic without I/O.
Filters raw provider results down to those that represent the same
title as a canonical query, loosening the criteria step by step so that
the caller always has something to play.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

import structlog

from sourcarr.domain.entities.sources import CanonicalQuery, RawSourceResult

log = structlog.get_logger(__name__)

DEFAULT_BRACKET_PAIRS: tuple[str, ...] = ("[]", "()", "［］", "（）", "【】")


def _bracket_pattern(pairs: Iterable[str]) -> re.Pattern[str] | None:
    alternatives = []
    for pair in pairs:
        open_ch, close_ch = re.escape(pair[0]), re.escape(pair[1])
        alternatives.append(f"{open_ch}[^{close_ch}]*{close_ch}")
    if not alternatives:
        return None
    return re.compile("|".join(alternatives))


class SourceMatcher:
    """Strict → loose → unfiltered matching of provider results.

    Strict: normalized title, year and episode count (within
    ``episode_tolerance``) all agree.  Loose: normalized title only.
    If both passes are empty the full candidate list is returned.
    """

    def __init__(
        self,
        *,
        bracket_pairs: Iterable[str] = DEFAULT_BRACKET_PAIRS,
        episode_tolerance: int = 5,
    ) -> None:
        self._brackets = _bracket_pattern(bracket_pairs)
        self._episode_tolerance = episode_tolerance

    def normalize(self, title: str) -> str:
        """Trim, collapse whitespace, strip bracketed text, case-fold."""
        text = " ".join(title.split())
        if self._brackets is not None:
            text = self._brackets.sub("", text)
        return " ".join(text.split()).casefold()

    def _is_strict_match(
        self,
        canonical: CanonicalQuery,
        norm_title: str,
        candidate: RawSourceResult,
    ) -> bool:
        if self.normalize(candidate.title) != norm_title:
            return False
        if canonical.year and candidate.year != canonical.year:
            return False
        if canonical.episode_count_hint is not None:
            delta = abs(candidate.episode_count - canonical.episode_count_hint)
            if delta > self._episode_tolerance:
                return False
        return True

    def match_same_work(
        self,
        canonical: CanonicalQuery,
        candidates: Sequence[RawSourceResult],
    ) -> list[RawSourceResult]:
        """Return the candidates believed to be the same work as ``canonical``.

        Never raises.  The result is non-empty whenever ``candidates`` is,
        and always contains the candidate ``canonical`` originated from.
        """
        if not candidates:
            return []

        norm_title = self.normalize(canonical.title)

        matched = [
            c for c in candidates if self._is_strict_match(canonical, norm_title, c)
        ]
        strategy = "strict"

        if not matched:
            matched = [c for c in candidates if self.normalize(c.title) == norm_title]
            strategy = "loose"

        if not matched:
            matched = list(candidates)
            strategy = "unfiltered"

        origin = next((c for c in candidates if canonical.is_origin(c)), None)
        if origin is not None and not any(canonical.is_origin(c) for c in matched):
            matched.insert(0, origin)

        log.debug(
            "source_match_completed",
            title=canonical.title,
            strategy=strategy,
            candidates=len(candidates),
            matched=len(matched),
        )
        return matched
