"""Playback session state machine.

Resolving → Ready → (EpisodeChanging | SourceChanging) → Ready → ... → Closed

The session owns one immutable ``PlaybackSessionState`` and replaces it
on every transition.  It never touches a concrete player: player
signals come in through the ``on_*`` methods and the session answers
with ``PlayerCommand`` lists for a thin adapter to execute.  Progress,
phase changes, history updates and errors are published as typed
events on ``events``.

Persistence failures are logged and swallowed; only resolution-phase
errors close the session.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import structlog

from sourcarr.application.use_cases import session_transitions as transitions
from sourcarr.application.use_cases.playback_resolution import ResolvedPlayback
from sourcarr.application.use_cases.source_search import ProgressCallback
from sourcarr.domain.entities.errors import (
    PlayerErrorKind,
    ResolutionError,
    SessionClosedError,
    SourcarrError,
    SourceNotFoundError,
)
from sourcarr.domain.entities.playback import (
    HistoryUpdate,
    InitialParams,
    PhaseChanged,
    PlaybackSessionState,
    PlayerCommand,
    ProgressEvent,
    SessionError,
    SessionEvent,
    SessionPhase,
)
from sourcarr.domain.entities.progress import ProgressState
from sourcarr.domain.entities.records import FavoriteRecord, PlayRecord, SkipConfig
from sourcarr.domain.entities.sources import ProbeResult, RawSourceResult
from sourcarr.domain.ports.persistence import PersistenceCollaborator

log = structlog.get_logger(__name__)

# Oldest events are dropped once this many are waiting unread.
EVENT_QUEUE_SIZE = 256

# ---------------------------------------------------------------------------
# Protocols: what the session needs from its collaborators.
# ---------------------------------------------------------------------------


class _Resolver(Protocol):
    async def resolve(
        self,
        params: InitialParams,
        on_progress: ProgressCallback | None = None,
    ) -> ResolvedPlayback: ...


class _SpeedTester(Protocol):
    async def speed_test(
        self, sources: tuple[RawSourceResult, ...]
    ) -> dict[str, ProbeResult]: ...


class _ProbeMemo(Protocol):
    async def aclose(self) -> None: ...


class _ReadyMarker(Protocol):
    def mark_ready(self, on_progress: ProgressCallback | None = None) -> None: ...


@dataclass(frozen=True)
class SessionSettings:
    """Per-session behaviour, built from configuration by the caller."""

    ad_block_default: bool = True
    skip_check_interval_seconds: float = 1.5
    episode_change_settle_seconds: float = 0.1
    min_save_position_seconds: float = 1.0
    save_interval_seconds: float = 5.0


class SessionHandle(Protocol):
    """Surface exposed to the surrounding application."""

    @property
    def state(self) -> PlaybackSessionState: ...

    async def change_episode(self, index: int) -> list[PlayerCommand]: ...

    async def change_source(
        self, source: str, id: str, title: str = ""
    ) -> list[PlayerCommand]: ...

    async def update_skip_config(self, config: SkipConfig) -> None: ...

    async def toggle_ad_block(self, enabled: bool) -> list[PlayerCommand]: ...

    async def speed_test(self) -> dict[str, ProbeResult]: ...

    async def is_favorited(self) -> bool: ...

    async def toggle_favorite(self) -> bool: ...

    async def close(self) -> None: ...


class PlaybackSession:
    def __init__(
        self,
        params: InitialParams,
        *,
        resolver: _Resolver,
        persistence: PersistenceCollaborator,
        selector: _SpeedTester,
        probe_memo: _ProbeMemo | None = None,
        ready_marker: _ReadyMarker | None = None,
        settings: SessionSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.params = params
        self._resolver = resolver
        self._persistence = persistence
        self._selector = selector
        self._probe_memo = probe_memo
        self._ready_marker = ready_marker
        self._settings = settings or SessionSettings()
        self._clock = clock
        self._wall_clock = wall_clock

        self._state = transitions.begin_resolving(
            params, ad_block=self._settings.ad_block_default
        )
        self.events: asyncio.Queue[SessionEvent] = asyncio.Queue(
            maxsize=EVENT_QUEUE_SIZE
        )
        self.progress_history: list[ProgressState] = []
        self.initial_commands: list[PlayerCommand] = []

        self._position = 0.0
        self._duration: float | None = None
        self._playing = False
        self._last_skip_check: float | None = None
        self._last_save: float | None = None
        self._settle_handle: asyncio.TimerHandle | None = None
        self._resolution: asyncio.Task[ResolvedPlayback] | None = None

    # ------------------------------------------------------------------
    # State & events
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackSessionState:
        return self._state

    @property
    def position(self) -> float:
        return self._position

    def _publish(self, event: SessionEvent) -> None:
        if self.events.full():
            self.events.get_nowait()
        self.events.put_nowait(event)

    def _set_state(self, state: PlaybackSessionState) -> None:
        previous = self._state.phase
        self._state = state
        if state.phase is not previous:
            log.debug(
                "session_phase_changed",
                previous=previous.value,
                phase=state.phase.value,
            )
            self._publish(PhaseChanged(phase=state.phase, state=state))

    def _on_progress(self, state: ProgressState) -> None:
        self.progress_history.append(state)
        self._publish(ProgressEvent(state=state))

    def _publish_history(self) -> None:
        state = self._state
        self._publish(
            HistoryUpdate(
                source=state.current_source,
                id=state.current_id,
                title=state.title,
                year=state.year,
                search_title=state.search_title,
            )
        )

    def _ensure_open(self) -> None:
        if self._state.is_closed:
            raise SessionClosedError("session is closed")

    def _load_command(self) -> PlayerCommand:
        return PlayerCommand(
            kind="load",
            url=self._state.current_episode_url,
            ad_block=self._state.ad_block_enabled,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def start(self) -> list[PlayerCommand]:
        """Resolve the initial parameters and load the first episode.

        A resolution failure closes the session with ``state.error``
        set and returns no commands.  Closing the session while it is
        still resolving cancels the resolution; ``start`` then returns no
        commands and the session stays Closed without an error.
        """
        if (
            self._state.phase is not SessionPhase.RESOLVING
            or self._resolution is not None
        ):
            return []
        self._resolution = asyncio.create_task(
            self._resolver.resolve(self.params, self._on_progress)
        )
        try:
            resolved = await self._resolution
        except asyncio.CancelledError:
            if not self._state.is_closed:
                raise
            log.info("session_resolution_cancelled", title=self.params.title)
            return []
        except ResolutionError as e:
            log.warning("session_resolution_failed", error=e.message)
            await self._terminate(e.message)
            return []
        except SourcarrError as e:
            log.warning("session_resolution_failed", error=str(e))
            await self._terminate(str(e) or "failed to resolve playback")
            return []
        finally:
            self._resolution = None

        if self._state.is_closed:
            return []

        self._set_state(
            transitions.become_ready(
                self._state,
                sources=resolved.sources,
                current=resolved.current,
                episode_index=resolved.episode_index,
                resume_time=resolved.resume_time,
                skip_config=resolved.skip_config,
            )
        )
        self._publish_history()
        if self._ready_marker is not None:
            self._ready_marker.mark_ready(self._on_progress)
        else:
            self._on_progress(ProgressState("ready", 100, "ready to play"))
        self.initial_commands = [self._load_command()]
        return self.initial_commands

    async def _terminate(self, message: str) -> None:
        self._cancel_settle()
        self._set_state(transitions.close(self._state, error=message))
        self._publish(SessionError(message=message))
        if self._probe_memo is not None:
            await self._probe_memo.aclose()

    # ------------------------------------------------------------------
    # Episode navigation
    # ------------------------------------------------------------------

    def _settle(self) -> None:
        self._settle_handle = None
        if not self._state.is_closed:
            self._set_state(transitions.settle(self._state))

    def _schedule_settle(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
        loop = asyncio.get_running_loop()
        self._settle_handle = loop.call_later(
            self._settings.episode_change_settle_seconds, self._settle
        )

    async def change_episode(self, index: int) -> list[PlayerCommand]:
        """Jump to episode ``index`` (0-based).

        No-op for the current index, for out-of-range indices and while a
        previous episode change is still settling.
        """
        self._ensure_open()
        state = self._state
        if state.phase is not SessionPhase.READY:
            return []
        if index == state.current_episode_index:
            return []
        if not transitions.episode_in_range(state, index):
            return []

        if self._playing:
            await self.save_progress()

        self._position = 0.0
        self._duration = None
        self._set_state(transitions.begin_episode_change(self._state, index))
        self._schedule_settle()
        log.info(
            "episode_changed",
            source=state.current_source,
            id=state.current_id,
            index=index,
        )
        return [self._load_command()]

    async def next_episode(self) -> list[PlayerCommand]:
        return await self.change_episode(self._state.current_episode_index + 1)

    async def previous_episode(self) -> list[PlayerCommand]:
        return await self.change_episode(self._state.current_episode_index - 1)

    # ------------------------------------------------------------------
    # Source switching
    # ------------------------------------------------------------------

    async def change_source(
        self, source: str, id: str, title: str = ""
    ) -> list[PlayerCommand]:
        """Switch to another candidate of ``available_sources``.

        Raises ``SourceNotFoundError`` without touching the state when the
        target is not a candidate.
        """
        self._ensure_open()
        state = self._state
        target = next(
            (s for s in state.available_sources if s.is_same_source(source, id)),
            None,
        )
        if target is None:
            log.info("source_change_target_missing", source=source, id=id, title=title)
            raise SourceNotFoundError(source, id)
        if target.is_same_source(state.current_source, state.current_id):
            return []

        self._set_state(transitions.begin_source_change(state))
        old_source, old_id = state.current_source, state.current_id

        await self._persist(
            "delete_play_record", self._persistence.delete_play_record, old_source, old_id
        )
        await self._persist(
            "delete_skip_config", self._persistence.delete_skip_config, old_source, old_id
        )
        if not state.skip_config.is_empty:
            await self._persist(
                "save_skip_config",
                self._persistence.save_skip_config,
                target.source,
                target.id,
                state.skip_config,
            )

        switched = transitions.switch_source(
            self._state, target, current_time=self._position
        )
        self._set_state(transitions.settle(switched))

        if switched.current_episode_index == state.current_episode_index:
            await self.save_progress()
        self._position = 0.0
        self._duration = None

        self._publish_history()
        log.info(
            "source_changed",
            previous=f"{old_source}+{old_id}",
            current=target.key,
            episode_index=self._state.current_episode_index,
        )
        return [self._load_command()]

    async def speed_test(self) -> dict[str, ProbeResult]:
        """Probe every candidate not yet probed in this session."""
        self._ensure_open()
        return await self._selector.speed_test(self._state.available_sources)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def update_skip_config(self, config: SkipConfig) -> None:
        self._ensure_open()
        self._set_state(transitions.with_skip_config(self._state, config))
        source, id = self._state.current_source, self._state.current_id
        if config.is_empty:
            await self._persist(
                "delete_skip_config", self._persistence.delete_skip_config, source, id
            )
        else:
            await self._persist(
                "save_skip_config",
                self._persistence.save_skip_config,
                source,
                id,
                config,
            )

    async def toggle_ad_block(self, enabled: bool) -> list[PlayerCommand]:
        """Switch manifest ad filtering and reload at the current position."""
        self._ensure_open()
        if enabled == self._state.ad_block_enabled:
            return []
        self._set_state(
            transitions.with_ad_block(
                self._state, enabled, current_time=self._position
            )
        )
        return [
            PlayerCommand(
                kind="reload",
                url=self._state.current_episode_url,
                position=self._state.resume_time_seconds,
                ad_block=enabled,
            )
        ]

    async def is_favorited(self) -> bool:
        source, id = self._state.current_source, self._state.current_id
        try:
            return await self._persistence.is_favorited(source, id)
        except Exception as e:  # noqa: BLE001
            log.warning("favorite_lookup_failed", key=f"{source}+{id}", error=str(e))
            return False

    async def toggle_favorite(self) -> bool:
        """Flip the favorite flag of the current source; returns the new value."""
        self._ensure_open()
        state = self._state
        current = state.current
        if await self.is_favorited():
            await self._persist(
                "delete_favorite",
                self._persistence.delete_favorite,
                state.current_source,
                state.current_id,
            )
            return False
        favorite = FavoriteRecord(
            title=state.title,
            source_name=current.source_name if current else "",
            year=state.year,
            cover=current.poster if current else "",
            total_episodes=state.total_episodes,
            save_time=self._wall_clock() * 1000,
            search_title=state.search_title,
        )
        return await self._persist(
            "save_favorite",
            self._persistence.save_favorite,
            state.current_source,
            state.current_id,
            favorite,
        )

    # ------------------------------------------------------------------
    # Player signals
    # ------------------------------------------------------------------

    def on_can_play(self, duration: float | None = None) -> list[PlayerCommand]:
        """Seek to the pending resume offset, exactly once."""
        if duration:
            self._duration = duration
        state, resume = transitions.consume_resume(self._state)
        self._state = state
        if not resume or resume <= 0:
            return []
        target = resume
        if self._duration and target >= self._duration - 2:
            target = max(0.0, self._duration - 5)
        self._position = target
        return [PlayerCommand(kind="seek", position=target)]

    def on_play(self) -> None:
        self._playing = True

    async def on_pause(
        self, current_time: float | None = None, duration: float | None = None
    ) -> None:
        self._track(current_time, duration)
        self._playing = False
        await self.save_progress()

    async def on_page_hide(self) -> None:
        await self.save_progress()

    async def on_time_update(
        self, current_time: float, duration: float | None = None
    ) -> list[PlayerCommand]:
        """Track position; apply intro/outro skips; save periodically."""
        if self._state.is_closed:
            return []
        self._track(current_time, duration)
        self._playing = True
        commands = await self._check_skip()

        now = self._clock()
        if self._last_save is None:
            self._last_save = now
        elif now - self._last_save >= self._settings.save_interval_seconds:
            await self.save_progress()
        return commands

    def _track(self, current_time: float | None, duration: float | None) -> None:
        if current_time is not None:
            self._position = current_time
        if duration:
            self._duration = duration

    async def _check_skip(self) -> list[PlayerCommand]:
        config = self._state.skip_config
        if not config.enable or self._state.phase is not SessionPhase.READY:
            return []
        now = self._clock()
        if (
            self._last_skip_check is not None
            and now - self._last_skip_check < self._settings.skip_check_interval_seconds
        ):
            return []
        self._last_skip_check = now

        position, duration = self._position, self._duration
        if config.intro_time > 0 and position < config.intro_time:
            self._position = config.intro_time
            return [
                PlayerCommand(
                    kind="seek", position=config.intro_time, message="skipped intro"
                )
            ]
        if (
            config.outro_time < 0
            and duration
            and duration > 0
            and position > duration + config.outro_time
        ):
            index = self._state.current_episode_index
            if index < self._state.total_episodes - 1:
                commands = await self.change_episode(index + 1)
                return [
                    PlayerCommand(kind="notice", message="skipped outro"),
                    *commands,
                ]
            self._playing = False
            return [PlayerCommand(kind="pause", message="skipped outro")]
        return []

    async def on_player_error(
        self, kind: PlayerErrorKind, fatal: bool
    ) -> list[PlayerCommand]:
        """Standard adaptive-streaming recovery.

        Network errors restart loading, media errors attempt media
        recovery, anything else tears the player down and closes the
        session.
        """
        if not fatal or self._state.is_closed:
            return []
        log.warning("player_fatal_error", kind=kind, key=self._state.current_source)
        if kind == "network":
            return [PlayerCommand(kind="restart_load")]
        if kind == "media":
            return [PlayerCommand(kind="recover_media")]
        message = "playback failed"
        await self._terminate(message)
        return [PlayerCommand(kind="teardown", message=message)]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(self, op: str, fn, *args) -> bool:
        try:
            await fn(*args)
        except Exception as e:  # noqa: BLE001
            log.warning(
                "persistence_failed",
                op=op,
                key=f"{args[0]}+{args[1]}",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    async def save_progress(self) -> bool:
        """Persist the play record of the current episode.

        Skipped below ``min_save_position_seconds`` or while the duration
        is unknown.  Returns whether a record was written.
        """
        state = self._state
        current = state.current
        if current is None or state.phase is SessionPhase.RESOLVING:
            return False
        if self._position < self._settings.min_save_position_seconds:
            return False
        if not self._duration:
            return False

        self._last_save = self._clock()
        record = PlayRecord(
            title=state.title,
            source_name=current.source_name,
            year=state.year,
            cover=current.poster,
            index=state.current_episode_index + 1,
            total_episodes=current.episode_count,
            play_time=math.floor(self._position),
            total_time=math.floor(self._duration),
            save_time=self._wall_clock() * 1000,
            search_title=state.search_title,
        )
        return await self._persist(
            "save_play_record",
            self._persistence.save_play_record,
            current.source,
            current.id,
            record,
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _cancel_settle(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    async def close(self) -> None:
        """Final progress save, cancel pending work, enter Closed."""
        if self._state.is_closed:
            return
        await self.save_progress()
        self._cancel_settle()
        self._set_state(transitions.close(self._state))
        if self._resolution is not None:
            self._resolution.cancel()
        if self._probe_memo is not None:
            await self._probe_memo.aclose()
        log.info(
            "session_closed",
            source=self._state.current_source,
            id=self._state.current_id,
        )


async def resolve_playback_session(
    params: InitialParams,
    *,
    factory: Callable[[InitialParams], PlaybackSession],
) -> PlaybackSession:
    """Build a session for ``params`` and run its entry resolution.

    The returned session is either Ready or Closed with ``state.error``.
    """
    session = factory(params)
    await session.start()
    return session
