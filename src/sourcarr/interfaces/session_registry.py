"""In-process registry of open playback sessions.

One view (a browser tab, a player window) owns at most one session.
Opening a new session for a view supersedes the previous one: the old
session is closed (final progress save included) and forgotten.
Sessions nobody touched for a while are closed by ``expire_idle``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from sourcarr.application.use_cases.playback_session import PlaybackSession
from sourcarr.domain.entities.playback import InitialParams, SessionPhase

log = structlog.get_logger(__name__)


@dataclass
class _Entry:
    session_id: str
    view_id: str
    session: PlaybackSession
    last_active: float = 0.0
    resolution: asyncio.Task[None] | None = field(default=None, repr=False)


class SessionRegistry:
    def __init__(
        self,
        factory: Callable[[InitialParams], PlaybackSession],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._clock = clock
        self._sessions: dict[str, _Entry] = {}
        self._views: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def _register(self, view_id: str, params: InitialParams) -> _Entry:
        session = self._factory(params)
        entry = _Entry(
            session_id=uuid.uuid4().hex,
            view_id=view_id,
            session=session,
            last_active=self._clock(),
        )

        async with self._lock:
            previous_id = self._views.get(view_id)
            self._views[view_id] = entry.session_id
            self._sessions[entry.session_id] = entry
            previous = self._sessions.pop(previous_id, None) if previous_id else None

        if previous is not None:
            log.info(
                "session_superseded",
                view_id=view_id,
                previous=previous.session_id,
                current=entry.session_id,
            )
            await previous.session.close()
        return entry

    async def _resolve(self, entry: _Entry) -> None:
        await entry.session.start()
        if self._views.get(entry.view_id) != entry.session_id:
            # superseded after resolution finished
            await entry.session.close()

    async def open(
        self, view_id: str, params: InitialParams
    ) -> tuple[str, PlaybackSession]:
        """Create and resolve a session for ``view_id``.

        The returned session is Ready, or Closed.  A session superseded
        while still resolving has its resolution cancelled and comes back
        Closed without an error.
        """
        entry = await self._register(view_id, params)
        await self._resolve(entry)
        return entry.session_id, entry.session

    async def open_in_background(
        self, view_id: str, params: InitialParams
    ) -> tuple[str, PlaybackSession]:
        """Register a session and resolve it without waiting.

        Progress is observable through ``session.events`` while the
        session is still Resolving.
        """
        entry = await self._register(view_id, params)
        entry.resolution = asyncio.create_task(self._resolve(entry))
        entry.resolution.add_done_callback(
            lambda t, e=entry: self._resolution_done(e, t)
        )
        return entry.session_id, entry.session

    @staticmethod
    def _resolution_done(entry: _Entry, task: asyncio.Task[None]) -> None:
        entry.resolution = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "session_resolution_crashed",
                session_id=entry.session_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def get(self, session_id: str) -> PlaybackSession | None:
        """Look up a session and mark it active."""
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        entry.last_active = self._clock()
        return entry.session

    def session_for_view(self, view_id: str) -> PlaybackSession | None:
        session_id = self._views.get(view_id)
        return self.get(session_id) if session_id else None

    async def close(self, session_id: str) -> bool:
        async with self._lock:
            entry = self._sessions.pop(session_id, None)
            if entry is None:
                return False
            if self._views.get(entry.view_id) == session_id:
                del self._views[entry.view_id]
        await entry.session.close()
        return True

    async def expire_idle(self, idle_seconds: float) -> int:
        """Close sessions untouched for ``idle_seconds``; returns the count.

        Sessions still resolving are left alone.
        """
        cutoff = self._clock() - idle_seconds
        expired = [
            entry.session_id
            for entry in list(self._sessions.values())
            if entry.last_active <= cutoff
            and entry.session.state.phase is not SessionPhase.RESOLVING
        ]
        closed = 0
        for session_id in expired:
            if await self.close(session_id):
                closed += 1
        if closed:
            log.info("idle_sessions_expired", count=closed, idle_seconds=idle_seconds)
        return closed

    async def close_all(self) -> None:
        async with self._lock:
            entries = list(self._sessions.values())
            self._sessions.clear()
            self._views.clear()
        for entry in entries:
            try:
                await entry.session.close()
            except Exception as e:  # noqa: BLE001
                log.warning(
                    "session_close_failed",
                    session_id=entry.session_id,
                    error=str(e),
                )
        pending = [e.resolution for e in entries if e.resolution is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if entries:
            log.info("sessions_closed", count=len(entries))
