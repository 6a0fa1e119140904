"""State-transition functions for PlaybackSessionState.

Every function takes the current immutable state and returns a new
one; none of them perform I/O.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from sourcarr.domain.entities.playback import (
    InitialParams,
    PlaybackSessionState,
    SessionPhase,
)
from sourcarr.domain.entities.records import SkipConfig
from sourcarr.domain.entities.sources import RawSourceResult


def begin_resolving(params: InitialParams, *, ad_block: bool) -> PlaybackSessionState:
    return PlaybackSessionState(
        phase=SessionPhase.RESOLVING,
        current_source=params.source,
        current_id=params.id,
        title=params.title,
        year=params.year,
        search_title=params.search_title,
        ad_block_enabled=ad_block,
    )


def become_ready(
    state: PlaybackSessionState,
    *,
    sources: Sequence[RawSourceResult],
    current: RawSourceResult,
    episode_index: int = 0,
    resume_time: float | None = None,
    skip_config: SkipConfig | None = None,
) -> PlaybackSessionState:
    """Adopt a resolved candidate set atomically.

    An out-of-range episode index falls back to 0 and drops the resume
    offset that belonged to it.
    """
    if not 0 <= episode_index < current.episode_count:
        episode_index = 0
        resume_time = None
    return replace(
        state,
        phase=SessionPhase.READY,
        current_source=current.source,
        current_id=current.id,
        current_episode_index=episode_index,
        available_sources=tuple(sources),
        resume_time_seconds=resume_time if resume_time and resume_time > 0 else None,
        skip_config=skip_config or SkipConfig(),
        title=current.title or state.title,
        year=current.year or state.year,
        error=None,
    )


def episode_in_range(state: PlaybackSessionState, index: int) -> bool:
    return 0 <= index < state.total_episodes


def begin_episode_change(
    state: PlaybackSessionState, index: int
) -> PlaybackSessionState:
    return replace(
        state,
        phase=SessionPhase.EPISODE_CHANGING,
        current_episode_index=index,
        resume_time_seconds=None,
    )


def settle(state: PlaybackSessionState) -> PlaybackSessionState:
    """Leave a transient phase (episode/source changing) back to Ready."""
    if state.phase in (SessionPhase.EPISODE_CHANGING, SessionPhase.SOURCE_CHANGING):
        return replace(state, phase=SessionPhase.READY)
    return state


def begin_source_change(state: PlaybackSessionState) -> PlaybackSessionState:
    return replace(state, phase=SessionPhase.SOURCE_CHANGING)


def switch_source(
    state: PlaybackSessionState,
    target: RawSourceResult,
    *,
    current_time: float = 0.0,
) -> PlaybackSessionState:
    """Make ``target`` the current source.

    The episode index carries over when ``target`` has that episode,
    otherwise it resets to 0 and any pending resume offset is dropped.
    Staying on the same episode with no pending resume turns the current
    playback position (when past 1s) into the new resume offset.
    """
    index = state.current_episode_index
    resume = state.resume_time_seconds
    if index >= target.episode_count:
        index = 0
        resume = None
    elif not resume and current_time > 1:
        resume = current_time
    return replace(
        state,
        current_source=target.source,
        current_id=target.id,
        current_episode_index=index,
        resume_time_seconds=resume,
        title=target.title or state.title,
        year=target.year or state.year,
    )


def with_skip_config(
    state: PlaybackSessionState, config: SkipConfig
) -> PlaybackSessionState:
    return replace(state, skip_config=config)


def with_ad_block(
    state: PlaybackSessionState, enabled: bool, *, current_time: float = 0.0
) -> PlaybackSessionState:
    resume = current_time if current_time > 0 else state.resume_time_seconds
    return replace(state, ad_block_enabled=enabled, resume_time_seconds=resume)


def consume_resume(
    state: PlaybackSessionState,
) -> tuple[PlaybackSessionState, float | None]:
    """Read the pending resume offset once and clear it."""
    resume = state.resume_time_seconds
    if resume is None:
        return state, None
    return replace(state, resume_time_seconds=None), resume


def close(
    state: PlaybackSessionState, *, error: str | None = None
) -> PlaybackSessionState:
    return replace(state, phase=SessionPhase.CLOSED, error=error or state.error)
