"""Tests for the pure PlaybackSessionState transitions."""

from __future__ import annotations

from sourcarr.application.use_cases import session_transitions as t
from sourcarr.domain.entities import (
    InitialParams,
    RawSourceResult,
    SessionPhase,
    SkipConfig,
)


def _make_source(source: str, episodes: int) -> RawSourceResult:
    return RawSourceResult(
        source=source,
        id="1",
        title=f"Title {source}",
        year="2023",
        episodes=tuple(f"https://{source}/{i}.m3u8" for i in range(episodes)),
    )


def _ready(index: int = 1, resume: float | None = None):
    a = _make_source("alpha", 3)
    b = _make_source("beta", 1)
    base = t.begin_resolving(InitialParams(title="T"), ad_block=True)
    return t.become_ready(
        base, sources=[a, b], current=a, episode_index=index, resume_time=resume
    )


class TestResolving:
    def test_begin_resolving(self) -> None:
        state = t.begin_resolving(
            InitialParams(title="T", source="alpha", id="1", search_title="S"),
            ad_block=False,
        )
        assert state.phase is SessionPhase.RESOLVING
        assert state.current_source == "alpha"
        assert state.search_title == "S"
        assert state.ad_block_enabled is False

    def test_become_ready(self) -> None:
        state = _ready(index=2, resume=120)
        assert state.phase is SessionPhase.READY
        assert state.current_episode_index == 2
        assert state.resume_time_seconds == 120
        assert state.total_episodes == 3
        assert state.current_episode_url == "https://alpha/2.m3u8"
        assert state.title == "Title alpha"

    def test_out_of_range_index_resets(self) -> None:
        state = _ready(index=9, resume=120)
        assert state.current_episode_index == 0
        assert state.resume_time_seconds is None

    def test_zero_resume_dropped(self) -> None:
        assert _ready(resume=0).resume_time_seconds is None


class TestEpisodeChange:
    def test_begin_and_settle(self) -> None:
        state = t.begin_episode_change(_ready(resume=50), 2)
        assert state.phase is SessionPhase.EPISODE_CHANGING
        assert state.current_episode_index == 2
        assert state.resume_time_seconds is None
        assert t.settle(state).phase is SessionPhase.READY

    def test_settle_leaves_other_phases(self) -> None:
        closed = t.close(_ready())
        assert t.settle(closed) is closed

    def test_episode_in_range(self) -> None:
        state = _ready()
        assert t.episode_in_range(state, 2)
        assert not t.episode_in_range(state, 3)
        assert not t.episode_in_range(state, -1)


class TestSourceSwitch:
    def test_index_carries_over(self) -> None:
        state = _ready(index=1)
        target = _make_source("gamma", 5)
        switched = t.switch_source(state, target, current_time=42.0)
        assert switched.current_source == "gamma"
        assert switched.current_episode_index == 1
        assert switched.resume_time_seconds == 42.0

    def test_index_resets_when_target_shorter(self) -> None:
        state = _ready(index=2, resume=30)
        switched = t.switch_source(state, _make_source("beta", 1), current_time=99)
        assert switched.current_episode_index == 0
        assert switched.resume_time_seconds is None

    def test_pending_resume_kept(self) -> None:
        state = _ready(index=1, resume=30)
        switched = t.switch_source(state, _make_source("gamma", 5), current_time=99)
        assert switched.resume_time_seconds == 30

    def test_early_position_not_resumed(self) -> None:
        switched = t.switch_source(_ready(), _make_source("gamma", 5), current_time=0.5)
        assert switched.resume_time_seconds is None


class TestSettings:
    def test_skip_config(self) -> None:
        config = SkipConfig(enable=True, intro_time=60)
        assert t.with_skip_config(_ready(), config).skip_config == config

    def test_ad_block_keeps_position(self) -> None:
        state = t.with_ad_block(_ready(), False, current_time=77)
        assert state.ad_block_enabled is False
        assert state.resume_time_seconds == 77

    def test_consume_resume_once(self) -> None:
        state, resume = t.consume_resume(_ready(resume=12))
        assert resume == 12
        assert t.consume_resume(state)[1] is None

    def test_close_keeps_previous_error(self) -> None:
        state = t.close(_ready(), error="boom")
        assert state.is_closed
        assert t.close(state).error == "boom"
