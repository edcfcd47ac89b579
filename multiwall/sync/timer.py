# multiwall/sync/timer.py

"""
Epoch-based autonomous timer.

The rotation phase is never counted locally: it is re-derived from wall time
and the shared epoch every time it is needed, so a screen that loads late,
sleeps, or misses ticks lands on the same index as its neighbours.
"""

from __future__ import annotations

import math
from typing import Callable

from multiwall.clock import TimerHandle, WallClock, WallScheduler
from multiwall.constants import WALL_TIMER_DEFAULT_INTERVAL_MS, WALL_TIMER_DRIFT_CHECK_MS
from multiwall.logger import get_logger

log = get_logger(__name__)


def normalize_interval(interval_ms: float | None) -> int:
    """Substitute the default interval for absent or non-positive values."""
    if interval_ms is None or interval_ms <= 0:
        return WALL_TIMER_DEFAULT_INTERVAL_MS
    return int(interval_ms)


def global_index(start_time: float, interval_ms: float, now: float) -> int:
    """floor((now - start_time) / interval_ms), also for now < start_time."""
    interval = normalize_interval(interval_ms)
    return math.floor((now - start_time) / interval)


def next_boundary_delay(start_time: float, interval_ms: float, now: float) -> float:
    """Milliseconds until the next interval boundary, in (0, interval_ms]."""
    interval = normalize_interval(interval_ms)
    # python's % already lands in [0, interval) for negative operands
    return interval - ((now - start_time) % interval)


class AutonomousTimer:
    """
    Two independent timers against a shared epoch.

    - the boundary timer first fires at the next interval boundary, then every
      `interval_ms`
    - the drift-check timer fires every `drift_check_ms`, regardless of the
      interval, so a stalled boundary timer is corrected within one period
    """

    def __init__(
        self,
        clock: WallClock,
        scheduler: WallScheduler,
        on_boundary: Callable[[], None],
        on_drift_check: Callable[[], None],
        drift_check_ms: int = WALL_TIMER_DRIFT_CHECK_MS,
    ) -> None:
        self._clock = clock
        self._scheduler = scheduler
        self._on_boundary = on_boundary
        self._on_drift_check = on_drift_check
        self._drift_check_ms = drift_check_ms if drift_check_ms > 0 else WALL_TIMER_DRIFT_CHECK_MS

        self._start_time: float | None = None
        self._interval_ms: int = WALL_TIMER_DEFAULT_INTERVAL_MS
        self._boundary_handle: TimerHandle | None = None
        self._drift_handle: TimerHandle | None = None

    @property
    def running(self) -> bool:
        return self._start_time is not None

    @property
    def epoch(self) -> tuple[float, int] | None:
        """(start_time, interval_ms) while running, else None."""
        if self._start_time is None:
            return None
        return self._start_time, self._interval_ms

    def current_index(self) -> int | None:
        if self._start_time is None:
            return None
        return global_index(self._start_time, self._interval_ms, self._clock.now())

    def start(self, start_time: float, interval_ms: float | None) -> None:
        """(Re)start both timers against a new epoch."""
        self._cancel_handles()
        self._start_time = float(start_time)
        self._interval_ms = normalize_interval(interval_ms)

        delay = next_boundary_delay(self._start_time, self._interval_ms, self._clock.now())
        log.debug(
            f"Timer started: epoch={self._start_time:.0f} interval={self._interval_ms}ms "
            f"next boundary in {delay:.0f}ms"
        )
        self._boundary_handle = self._scheduler.call_later(delay, self._boundary_tick)
        self._drift_handle = self._scheduler.call_later(
            self._drift_check_ms, self._drift_tick
        )

    def stop(self) -> None:
        """Cancel both timers. Stopping a stopped timer is a no-op."""
        if self._start_time is None and self._boundary_handle is None:
            return
        self._cancel_handles()
        self._start_time = None
        log.debug("Timer stopped")

    def _cancel_handles(self) -> None:
        if self._boundary_handle is not None:
            self._boundary_handle.cancel()
            self._boundary_handle = None
        if self._drift_handle is not None:
            self._drift_handle.cancel()
            self._drift_handle = None

    def _boundary_tick(self) -> None:
        self._boundary_handle = self._scheduler.call_later(
            self._interval_ms, self._boundary_tick
        )
        self._on_boundary()

    def _drift_tick(self) -> None:
        self._drift_handle = self._scheduler.call_later(
            self._drift_check_ms, self._drift_tick
        )
        self._on_drift_check()
