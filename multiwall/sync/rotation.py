# multiwall/sync/rotation.py

"""
Rotation state machine.

One `RotationStateMachine` per screen. Inputs arrive as events on an internal
queue (from the transport, the autonomous timer or the presenter) and are
processed one at a time, so a handler never runs inside another handler.

States:
    Idle(i) --TimerFired/target != i--> Transitioning(i, j) --TransitionDone--> Idle(j)

`InitReceived` and `StopReceived` jump straight to Idle without animation,
cancelling any in-flight transition. Requests that arrive while a transition
is running are coalesced into `pending_index` and re-checked against the
global index when the transition completes.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

from multiwall.bases.models import LayoutMode, ScreenIdentity
from multiwall.clock import TimerHandle, WallClock, WallScheduler
from multiwall.constants import (
    WALL_TIMER_DEFAULT_INTERVAL_MS,
    WALL_TIMER_DRIFT_CHECK_MS,
    WALL_TIMER_TRANSITION_MS,
)
from multiwall.logger import get_logger
from multiwall.sync.sequencer import SequencerState
from multiwall.sync.timer import AutonomousTimer, global_index, normalize_interval

log = get_logger(__name__)


def product_index(global_idx: int, position: int, offset: int, length: int) -> int:
    """Index into the product list for a screen position and slide offset."""
    if length <= 0:
        return 0
    return (global_idx + position + offset) % length


class Phase(str, Enum):
    IDLE = "idle"
    TRANSITIONING = "transitioning"


@dataclass
class ScreenSyncState:
    """Everything one screen knows about the rotation it is following."""

    identity: ScreenIdentity
    sequencer: SequencerState = field(default_factory=SequencerState)
    start_time: float | None = None
    interval_ms: int = WALL_TIMER_DEFAULT_INTERVAL_MS
    start_index: int = 0
    products: list[str] = field(default_factory=list)
    layout_mode: LayoutMode = LayoutMode.CARD
    production_mode: bool = False
    running: bool = False
    phase: Phase = Phase.IDLE
    committed_index: int = 0
    transition_to: int | None = None
    pending_index: int | None = None
    status: str = "Waiting for controller..."


# --- Events ---


@dataclass(frozen=True)
class InitReceived:
    start_time: float
    interval_ms: int | None = None
    products: tuple[str, ...] = ()
    layout_mode: LayoutMode = LayoutMode.CARD
    production_mode: bool = False
    start_index: int = 0


@dataclass(frozen=True)
class StopReceived:
    pass


@dataclass(frozen=True)
class ConfigUpdated:
    products: tuple[str, ...] = ()
    layout_mode: LayoutMode = LayoutMode.CARD
    interval_ms: int | None = None
    production_mode: bool = False


@dataclass(frozen=True)
class TimerFired:
    pass


@dataclass(frozen=True)
class DriftCheck:
    pass


@dataclass(frozen=True)
class TransitionDone:
    pass


RotationEvent = (
    InitReceived | StopReceived | ConfigUpdated | TimerFired | DriftCheck | TransitionDone
)


# --- Presentation ---


@dataclass(frozen=True)
class SlideFrame:
    """What a screen should show: previous, current and next slide."""

    prev: str | None
    current: str | None
    next: str | None
    index: int
    layout_mode: LayoutMode = LayoutMode.CARD
    production_mode: bool = False
    status: str = ""


class Presenter(Protocol):
    def render(self, frame: SlideFrame, *, animate: bool) -> None: ...


class LoggingPresenter:
    """Headless presenter: every rendered frame becomes a log line."""

    def __init__(self, name: str = "screen") -> None:
        self.name = name
        self.frames: list[SlideFrame] = []

    def render(self, frame: SlideFrame, *, animate: bool) -> None:
        self.frames.append(frame)
        if frame.current is None:
            log.info(f"[{self.name}] {frame.status or 'Nothing to show'}")
            return
        mode = "slide" if animate else "snap"
        log.info(f"[{self.name}] {mode} -> #{frame.index}: {frame.current[:60]}")


class RotationStateMachine:
    """Explicit FSM over a `ScreenSyncState`, driven by an event queue."""

    def __init__(
        self,
        state: ScreenSyncState,
        clock: WallClock,
        scheduler: WallScheduler,
        presenter: Presenter,
        *,
        transition_ms: int = WALL_TIMER_TRANSITION_MS,
        drift_check_ms: int = WALL_TIMER_DRIFT_CHECK_MS,
        presenter_reports_done: bool = False,
    ) -> None:
        self.state = state
        self._clock = clock
        self._scheduler = scheduler
        self._presenter = presenter
        self._transition_ms = max(0, transition_ms)
        self._presenter_reports_done = presenter_reports_done

        self._timer = AutonomousTimer(
            clock,
            scheduler,
            on_boundary=lambda: self.post(TimerFired()),
            on_drift_check=lambda: self.post(DriftCheck()),
            drift_check_ms=drift_check_ms,
        )
        self._transition_handle: TimerHandle | None = None
        self._queue: deque[RotationEvent] = deque()
        self._draining = False
        self._handlers: dict[type, Callable] = {
            InitReceived: self._on_init,
            StopReceived: self._on_stop,
            ConfigUpdated: self._on_config,
            TimerFired: self._on_timer,
            DriftCheck: self._on_drift_check,
            TransitionDone: self._on_transition_done,
        }

    @property
    def timer(self) -> AutonomousTimer:
        return self._timer

    # --- Event queue ---

    def post(self, event: RotationEvent) -> None:
        """Queue *event* and process the queue unless already processing it."""
        self._queue.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                current = self._queue.popleft()
                self._handlers[type(current)](current)
        finally:
            self._draining = False

    def transition_done(self) -> None:
        """Called by presenters that report their own animation end."""
        self.post(TransitionDone())

    def close(self) -> None:
        self._timer.stop()
        self._cancel_transition()
        self._queue.clear()

    # --- Queries ---

    def target_index(self) -> int | None:
        """The index the data says is current, or None without a running epoch."""
        s = self.state
        if not s.running or s.start_time is None or not s.products:
            return None
        return s.start_index + global_index(s.start_time, s.interval_ms, self._clock.now())

    def displayed_index(self) -> int:
        s = self.state
        return product_index(s.committed_index, s.identity.position, 0, len(s.products))

    def slides(self, committed: int | None = None) -> tuple[str | None, str | None, str | None]:
        s = self.state
        n = len(s.products)
        if n == 0:
            return None, None, None
        idx = s.committed_index if committed is None else committed
        pos = s.identity.position
        return (
            s.products[product_index(idx, pos, -1, n)],
            s.products[product_index(idx, pos, 0, n)],
            s.products[product_index(idx, pos, 1, n)],
        )

    # --- Handlers ---

    def _on_init(self, event: InitReceived) -> None:
        s = self.state
        self._cancel_transition()
        s.start_time = event.start_time
        s.interval_ms = normalize_interval(event.interval_ms)
        s.start_index = event.start_index
        s.products = list(event.products)
        s.layout_mode = event.layout_mode
        s.production_mode = event.production_mode
        s.running = True

        if not s.products:
            self._timer.stop()
            s.committed_index = 0
            s.status = "No products to display"
            self._render(animate=False)
            return

        self._timer.start(s.start_time, s.interval_ms)
        s.committed_index = self.target_index()
        s.status = "Running"
        log.info(
            f"Rotation started at index {s.committed_index} "
            f"(position {s.identity.position}, {len(s.products)} products, {s.interval_ms}ms)"
        )
        self._render(animate=False)

    def _on_stop(self, event: StopReceived) -> None:
        s = self.state
        if not s.running and s.phase is Phase.IDLE:
            return
        if s.phase is Phase.TRANSITIONING and s.transition_to is not None:
            s.committed_index = s.transition_to
        self._cancel_transition()
        self._timer.stop()
        s.running = False
        s.start_time = None
        s.status = "Stopped"
        log.info(f"Rotation stopped at index {s.committed_index}")
        self._render(animate=False)

    def _on_config(self, event: ConfigUpdated) -> None:
        s = self.state
        s.products = list(event.products)
        s.layout_mode = event.layout_mode
        s.production_mode = event.production_mode
        s.interval_ms = normalize_interval(event.interval_ms)

        if not s.running or s.start_time is None:
            self._render(animate=False)
            return

        if not s.products:
            self._cancel_transition()
            self._timer.stop()
            s.committed_index = 0
            s.status = "No products to display"
            self._render(animate=False)
            return

        # reschedule against the existing epoch
        self._timer.start(s.start_time, s.interval_ms)
        target = self.target_index()
        if s.phase is Phase.TRANSITIONING:
            s.pending_index = target
            return
        s.committed_index = target
        self._render(animate=False)

    def _on_timer(self, event: TimerFired) -> None:
        s = self.state
        target = self.target_index()
        if target is None:
            return
        if s.phase is Phase.TRANSITIONING:
            s.pending_index = target
            return
        if target != s.committed_index:
            self._begin_transition(target)

    def _on_drift_check(self, event: DriftCheck) -> None:
        s = self.state
        target = self.target_index()
        if target is None:
            return
        if s.phase is Phase.TRANSITIONING:
            s.pending_index = target
            return
        if target != s.committed_index:
            log.debug(f"Drift corrected: {s.committed_index} -> {target}")
            s.committed_index = target
            self._render(animate=False)

    def _on_transition_done(self, event: TransitionDone) -> None:
        s = self.state
        if s.phase is not Phase.TRANSITIONING or s.transition_to is None:
            return
        s.committed_index = s.transition_to
        s.transition_to = None
        s.pending_index = None
        s.phase = Phase.IDLE
        self._transition_handle = None

        target = self.target_index()
        if target is not None and target != s.committed_index:
            self._begin_transition(target)

    # --- Helpers ---

    def _begin_transition(self, to_index: int) -> None:
        s = self.state
        s.phase = Phase.TRANSITIONING
        s.transition_to = to_index
        s.pending_index = None
        self._presenter.render(self._frame(to_index), animate=True)
        if self._presenter_reports_done:
            return
        if self._transition_ms == 0:
            self.post(TransitionDone())
        else:
            self._transition_handle = self._scheduler.call_later(
                self._transition_ms, self.transition_done
            )

    def _cancel_transition(self) -> None:
        s = self.state
        if self._transition_handle is not None:
            self._transition_handle.cancel()
            self._transition_handle = None
        s.phase = Phase.IDLE
        s.transition_to = None
        s.pending_index = None

    def _frame(self, committed: int) -> SlideFrame:
        s = self.state
        prev, current, nxt = self.slides(committed)
        return SlideFrame(
            prev=prev,
            current=current,
            next=nxt,
            index=product_index(committed, s.identity.position, 0, len(s.products)),
            layout_mode=s.layout_mode,
            production_mode=s.production_mode,
            status=s.status,
        )

    def _render(self, *, animate: bool) -> None:
        self._presenter.render(self._frame(self.state.committed_index), animate=animate)
