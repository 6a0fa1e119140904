"""Tests for session state, persisted records and progress entities."""

from __future__ import annotations

from sourcarr.domain.entities import (
    FavoriteRecord,
    InitialParams,
    PlaybackSessionState,
    PlayRecord,
    PreferProgressState,
    RawSourceResult,
    SessionPhase,
    SkipConfig,
)


def _make_state(**kwargs) -> PlaybackSessionState:
    source = RawSourceResult(
        source="alpha",
        id="1",
        title="Frieren",
        episodes=("https://a/1.m3u8", "https://a/2.m3u8"),
    )
    defaults = dict(
        phase=SessionPhase.READY,
        current_source="alpha",
        current_id="1",
        available_sources=(source,),
    )
    defaults.update(kwargs)
    return PlaybackSessionState(**defaults)


class TestInitialParams:
    def test_query_text_prefers_search_title(self) -> None:
        params = InitialParams(title="Frieren", search_title="Sousou no Frieren")
        assert params.query_text == "Sousou no Frieren"

    def test_query_text_falls_back_to_title(self) -> None:
        assert InitialParams(title="Frieren").query_text == "Frieren"

    def test_direct_link_needs_source_and_id(self) -> None:
        assert InitialParams(source="alpha", id="1").has_direct_link
        assert not InitialParams(source="alpha").has_direct_link
        assert not InitialParams(id="1").has_direct_link


class TestPlaybackSessionState:
    def test_current_resolves_from_available(self) -> None:
        state = _make_state()
        assert state.current is not None
        assert state.current.key == "alpha+1"
        assert state.total_episodes == 2

    def test_current_missing(self) -> None:
        state = _make_state(current_source="beta")
        assert state.current is None
        assert state.total_episodes == 0
        assert state.current_episode_url is None

    def test_current_episode_url(self) -> None:
        state = _make_state(current_episode_index=1)
        assert state.current_episode_url == "https://a/2.m3u8"

    def test_out_of_range_index_has_no_url(self) -> None:
        state = _make_state(current_episode_index=5)
        assert state.current_episode_url is None

    def test_closed(self) -> None:
        assert _make_state(phase=SessionPhase.CLOSED).is_closed
        assert not _make_state().is_closed


class TestSkipConfig:
    def test_default_is_empty(self) -> None:
        assert SkipConfig().is_empty

    def test_any_value_is_not_empty(self) -> None:
        assert not SkipConfig(enable=True).is_empty
        assert not SkipConfig(intro_time=90).is_empty
        assert not SkipConfig(outro_time=-60).is_empty

    def test_from_dict_coerces(self) -> None:
        config = SkipConfig.from_dict(
            {"enable": 1, "intro_time": "85", "outro_time": -30}
        )
        assert config == SkipConfig(enable=True, intro_time=85.0, outro_time=-30.0)


class TestRecords:
    def test_play_record_dict_shape(self) -> None:
        record = PlayRecord(
            title="Frieren",
            source_name="Alpha",
            year="2023",
            cover="",
            index=2,
            total_episodes=28,
            play_time=321,
            total_time=1440,
            save_time=1_700_000_000_000,
        )
        data = record.to_dict()
        assert data["index"] == 2
        assert data["search_title"] == ""
        assert PlayRecord.from_dict(data) == record

    def test_play_record_from_partial_dict(self) -> None:
        record = PlayRecord.from_dict({"title": "Frieren", "play_time": 12.5})
        assert record.index == 1
        assert record.play_time == 12.5
        assert record.total_episodes == 0

    def test_favorite_from_dict_defaults(self) -> None:
        favorite = FavoriteRecord.from_dict({"title": "Frieren"})
        assert favorite.title == "Frieren"
        assert favorite.total_episodes == 0


class TestPreferProgressState:
    def test_projects_to_preferring(self) -> None:
        state = PreferProgressState("testing", 45, "testing sources")
        progress = state.as_progress()
        assert progress.stage == "preferring"
        assert progress.progress == 45
        assert progress.message == "testing sources"

    def test_idle_stays_idle(self) -> None:
        assert PreferProgressState("idle", 0).as_progress().stage == "idle"
