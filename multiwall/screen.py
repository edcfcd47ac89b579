# multiwall/screen.py

"""
Screen runtime.

A `WallScreen` belongs to one (instance, group, position). It subscribes to
its group's channel once, runs every inbound envelope through the sequencer
and feeds what survives into its rotation state machine. Between envelopes it
keeps rotating on its own from the shared epoch.
"""

from typing import Any

from multiwall.bases.models import (
    ConfigSnapshot,
    ContentGroup,
    EnvelopeType,
    GroupKind,
    ScreenIdentity,
    WallEnvelope,
    parse_envelope,
)
from multiwall.clock import AsyncioScheduler, SystemClock, WallClock, WallScheduler
from multiwall.config import WallLaunchConfig, get_config
from multiwall.constants import WALL_RELAY_EVENT
from multiwall.logger import get_logger
from multiwall.routing import configured_channel
from multiwall.sync.rotation import (
    ConfigUpdated,
    InitReceived,
    LoggingPresenter,
    Presenter,
    RotationStateMachine,
    ScreenSyncState,
    SlideFrame,
    StopReceived,
    TimerFired,
)
from multiwall.sync.sequencer import AdmissionPolicy, admit
from multiwall.transport.base import Subscription, TransportError, WallTransport

log = get_logger(__name__)


def resolve_group(
    snapshot: ConfigSnapshot, position: int, group_id: str | None = None
) -> ContentGroup | None:
    """
    Pick the group a screen belongs to.

    An explicit group id wins, then the screen assignment for the position,
    then the first group.
    """
    if group_id:
        group = snapshot.group(group_id)
        if group is None:
            log.warning(f"Group {group_id!r} not found in snapshot")
        return group
    assigned = snapshot.screen_assignments.get(position)
    if assigned:
        group = snapshot.group(assigned)
        if group is not None:
            return group
        log.warning(f"Position {position} is assigned to unknown group {assigned!r}")
    return snapshot.ad_groups[0] if snapshot.ad_groups else None


class WallScreen:
    def __init__(
        self,
        identity: ScreenIdentity,
        group: ContentGroup,
        transport: WallTransport,
        *,
        clock: WallClock | None = None,
        scheduler: WallScheduler | None = None,
        presenter: Presenter | None = None,
        settings: WallLaunchConfig | None = None,
    ) -> None:
        self.settings = settings or get_config()
        self.identity = identity
        self.group = group
        self.transport = transport
        self.presenter = presenter or LoggingPresenter(f"screen#{identity.position}")
        self.channel = configured_channel(
            identity.instance_id, identity.group_id, self.settings.transport
        )

        self.state = ScreenSyncState(identity=identity)
        self.machine = RotationStateMachine(
            self.state,
            clock or SystemClock(),
            scheduler or AsyncioScheduler(),
            self.presenter,
            transition_ms=self.settings.timer.transition_ms,
            drift_check_ms=self.settings.timer.drift_check_ms,
        )
        self._subscription: Subscription | None = None

    @property
    def is_static(self) -> bool:
        return self.group.kind is GroupKind.STATIC

    def displayed_index(self) -> int:
        return self.machine.displayed_index()

    def current(self) -> str | None:
        return self.machine.slides()[1]

    async def start(self) -> bool:
        """Render the initial state and subscribe. Returns False if subscribing failed."""
        if self.is_static:
            self._render_static()
            return True

        self.state.layout_mode = self.group.layout_mode
        self.state.production_mode = self.group.production_mode
        self.presenter.render(
            SlideFrame(prev=None, current=None, next=None, index=0, status=self.state.status),
            animate=False,
        )

        if self._subscription is not None:
            return True
        try:
            self._subscription = await self.transport.subscribe(
                self.channel, WALL_RELAY_EVENT, self.handle
            )
        except TransportError as e:
            log.error(f"Screen #{self.identity.position} could not subscribe: {e}")
            return False
        log.info(f"Screen #{self.identity.position} listening on {self.channel}")
        return True

    def handle(self, raw: str | bytes | dict[str, Any]) -> bool:
        """Process one inbound message. Returns True if it reached the state machine."""
        envelope = parse_envelope(raw)
        if envelope is None or self.is_static:
            return False
        if envelope.group_id and envelope.group_id != self.identity.group_id:
            log.debug(f"Ignoring envelope for group {envelope.group_id}")
            return False
        if envelope.type is EnvelopeType.CONTROLLER_SYNC:
            return False

        admission = admit(
            self.state.sequencer, envelope, policy=AdmissionPolicy.ADOPT_ALWAYS
        )
        if not admission.accepted:
            log.debug(
                f"Discarding {admission.verdict.value} {envelope.type.value} "
                f"seq {envelope.sequence} (last {self.state.sequencer.last_sequence})"
            )
            return False
        self.state.sequencer = admission.state
        self._dispatch(envelope)
        return True

    def _dispatch(self, envelope: WallEnvelope) -> None:
        if envelope.type is EnvelopeType.INIT:
            self.machine.post(self._init_event(envelope))
        elif envelope.type is EnvelopeType.STOP:
            self.machine.post(StopReceived())
        elif envelope.type is EnvelopeType.CONFIG_UPDATE:
            if not self.state.running and envelope.start_time is not None:
                # a screen opened after the init joins from the carried epoch
                self.machine.post(self._init_event(envelope))
                return
            self.machine.post(
                ConfigUpdated(
                    products=tuple(envelope.products),
                    layout_mode=envelope.layout_mode,
                    interval_ms=envelope.interval_ms,
                    production_mode=envelope.production_mode,
                )
            )
        elif envelope.type is EnvelopeType.TICK:
            if self.state.running and self.state.start_time is not None:
                self.machine.post(TimerFired())
            elif envelope.start_time is not None:
                # a tick carrying an epoch is enough to join a running rotation
                self.machine.post(self._init_event(envelope))

    @staticmethod
    def _init_event(envelope: WallEnvelope) -> InitReceived:
        return InitReceived(
            start_time=envelope.start_time if envelope.start_time is not None else envelope.ts,
            interval_ms=envelope.interval_ms,
            products=tuple(envelope.products),
            layout_mode=envelope.layout_mode,
            production_mode=envelope.production_mode,
            start_index=envelope.start_index,
        )

    def _render_static(self) -> None:
        products = self.group.products[:1]
        self.state.products = list(products)
        self.state.layout_mode = self.group.layout_mode
        self.state.production_mode = self.group.production_mode
        self.state.status = "Static" if products else "No products to display"
        current = products[0] if products else None
        self.presenter.render(
            SlideFrame(
                prev=current,
                current=current,
                next=current,
                index=0,
                layout_mode=self.group.layout_mode,
                production_mode=self.group.production_mode,
                status=self.state.status,
            ),
            animate=False,
        )

    async def close(self) -> None:
        self.machine.close()
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None
