# multiwall/clock.py

"""
Clock and scheduler abstractions.

All timing in multiwall goes through a `WallClock` (wall time in
milliseconds) and a `WallScheduler` (one-shot callbacks after a delay in
milliseconds). Production code uses `SystemClock` + `AsyncioScheduler`;
tests and simulations use `ManualClock`, which is both and only moves when
told to.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class WallClock(Protocol):
    def now(self) -> float:
        """Wall-clock time in milliseconds since the Unix epoch."""
        ...


class WallScheduler(Protocol):
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run *callback* once after *delay_ms* milliseconds."""
        ...


class SystemClock:
    """Wall clock backed by time.time()."""

    def now(self) -> float:
        return time.time() * 1000


class AsyncioScheduler:
    """Scheduler backed by the running event loop's call_later."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(
        self, delay_ms: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, callback)


@dataclass
class _ManualHandle:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualClock:
    """
    Simulated clock and scheduler.

    `advance(ms)` moves time forward and fires every callback that falls due,
    in due order, with `now()` set to each callback's due time. `jump(ms)`
    moves time without firing anything, which is how a suspended tab or a
    stalled timer looks from the inside.
    """

    start: float = 0.0
    _now: float = field(init=False)
    _queue: list[tuple[float, int, _ManualHandle]] = field(
        init=False, default_factory=list
    )
    _counter: itertools.count = field(init=False, default_factory=itertools.count)

    def __post_init__(self) -> None:
        self._now = float(self.start)

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(due=self._now + max(0.0, delay_ms), callback=callback)
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled, not yet cancelled callbacks."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def jump(self, ms: float) -> None:
        """Move time forward without firing callbacks."""
        self._now += ms

    def run_due(self) -> int:
        """Fire callbacks already due at the current time. Returns how many ran."""
        return self._drain(self._now)

    def advance(self, ms: float) -> int:
        """Move time forward by *ms*, firing callbacks as they fall due."""
        target = self._now + ms
        fired = self._drain(target)
        self._now = target
        return fired

    def _drain(self, until: float) -> int:
        fired = 0
        while self._queue and self._queue[0][0] <= until:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            # overdue callbacks (after a jump) run at the current time
            self._now = max(self._now, due)
            handle.callback()
            fired += 1
        return fired
