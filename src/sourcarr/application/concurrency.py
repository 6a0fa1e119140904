"""Asyncio helpers shared by the resolution pipeline.

- ``split_batches`` / ``run_in_batches``: two-batch fan-out.  Items in
  one batch run concurrently, batches run one after another, capping
  simultaneous outbound connections at ``ceil(n / batches)``.
- ``SupersedingDebouncer``: latest-submission-wins debouncing.  A new
  submission cancels the previous one, whose caller receives ``None``.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

BatchCallback = Callable[[int, int, Sequence[T]], None]


def split_batches(items: Sequence[T], batches: int = 2) -> list[list[T]]:
    """Partition ``items`` into at most ``batches`` chunks of ``ceil(n/batches)``.

    >>> split_batches([1, 2, 3], 2)
    [[1, 2], [3]]
    """
    if not items:
        return []
    size = max(1, math.ceil(len(items) / max(1, batches)))
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    batches: int = 2,
    on_batch_start: BatchCallback[T] | None = None,
    on_batch_done: BatchCallback[T] | None = None,
) -> list[R | None]:
    """Run ``worker`` over ``items`` batch by batch.

    Returns one entry per item in input order; an item whose worker
    raised yields ``None`` (the failure is logged, not propagated).
    Cancellation of the caller propagates.
    """
    chunks = split_batches(items, batches)
    total = len(chunks)
    results: list[R | None] = []

    for index, chunk in enumerate(chunks):
        if on_batch_start is not None:
            on_batch_start(index, total, chunk)

        outcomes = await asyncio.gather(
            *(worker(item) for item in chunk), return_exceptions=True
        )
        for item, outcome in zip(chunk, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.debug(
                    "batch_item_failed",
                    item=repr(item)[:120],
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                results.append(None)
            else:
                results.append(outcome)

        if on_batch_done is not None:
            on_batch_done(index, total, chunk)

    return results


class SupersedingDebouncer(Generic[R]):
    """Collapse rapid submissions into the latest one.

    Each ``submit`` waits ``delay`` seconds before running its factory.
    A newer submission cancels any older one still waiting or running;
    the superseded caller gets ``None``.
    """

    def __init__(self, delay: float = 0.1) -> None:
        self._delay = delay
        self._current: asyncio.Task[R] | None = None
        self._superseded: set[asyncio.Task[R]] = set()

    async def _delayed(self, factory: Callable[[], Awaitable[R]]) -> R:
        await asyncio.sleep(self._delay)
        return await factory()

    def cancel(self) -> None:
        """Cancel the pending submission (view teardown)."""
        previous = self._current
        if previous is not None and not previous.done():
            self._superseded.add(previous)
            previous.cancel()
        self._current = None

    async def submit(self, factory: Callable[[], Awaitable[R]]) -> R | None:
        self.cancel()
        task = asyncio.create_task(self._delayed(factory))
        self._current = task
        try:
            return await task
        except asyncio.CancelledError:
            if task in self._superseded:
                self._superseded.discard(task)
                log.debug("debounced_call_superseded")
                return None
            raise
        finally:
            if self._current is task:
                self._current = None
