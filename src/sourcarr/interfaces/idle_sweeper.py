"""Background sweep of idle sessions and search debouncers."""

from __future__ import annotations

import asyncio

import structlog

from sourcarr.interfaces.search_debouncers import SearchDebouncers
from sourcarr.interfaces.session_registry import SessionRegistry

log = structlog.get_logger(__name__)


class IdleSweeper:
    """Closes sessions and drops debouncers nobody touched for a while.

    Call :meth:`run_forever` as an asyncio task during app lifespan.
    A view that never sent its page-hide signal still gets its final
    progress save when its session expires.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        debouncers: SearchDebouncers,
        *,
        idle_seconds: float,
        interval_seconds: float = 60.0,
    ) -> None:
        self._registry = registry
        self._debouncers = debouncers
        self._idle_seconds = idle_seconds
        self._interval = interval_seconds

    async def sweep(self) -> tuple[int, int]:
        """One pass; returns (sessions closed, debouncers dropped)."""
        sessions = await self._registry.expire_idle(self._idle_seconds)
        debouncers = self._debouncers.expire_idle(self._idle_seconds)
        return sessions, debouncers

    async def run_forever(self) -> None:
        log.info(
            "idle_sweeper_started",
            idle_seconds=self._idle_seconds,
            interval_seconds=self._interval,
        )
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    await self.sweep()
                except Exception:
                    log.error("idle_sweeper_tick_error", exc_info=True)
        except asyncio.CancelledError:
            log.info("idle_sweeper_cancelled")
            raise
