# multiwall/sync/reconciler.py

"""
Controller-to-controller reconciliation.

Every controller republishes its full edit state as a `controller-sync`
envelope on each local change. Peers merge those envelopes with the same
sequencing rule screens use, ignoring their own echoes. This is best-effort
last-writer-wins: two edits inside one delivery window race and the higher
sequence wins.
"""

from typing import Any, Callable

from multiwall.bases.models import EnvelopeType, WallEnvelope, parse_envelope
from multiwall.constants import WALL_RELAY_EVENT
from multiwall.logger import get_logger
from multiwall.sync.sequencer import AdmissionPolicy, SequencerState, Verdict, admit
from multiwall.transport.base import Subscription, TransportError, WallTransport

log = get_logger(__name__)


class ControllerReconciler:
    def __init__(
        self, session_id: str, apply: Callable[[WallEnvelope], None]
    ) -> None:
        self.session_id = session_id
        self.state = SequencerState()
        self._apply = apply
        self._subscription: Subscription | None = None

    def note_local(self, sequence: int) -> None:
        """Local edits move the watermark so older remote edits cannot revert them."""
        self.state = self.state.note_local(sequence)

    def handle(self, raw: str | bytes | dict[str, Any]) -> Verdict | None:
        """Merge one inbound message. Returns the verdict, or None when not applicable."""
        envelope = parse_envelope(raw)
        if envelope is None or envelope.type is not EnvelopeType.CONTROLLER_SYNC:
            return None

        admission = admit(
            self.state,
            envelope,
            policy=AdmissionPolicy.MERGE_FORWARD,
            own_session_id=self.session_id,
        )
        if admission.verdict is Verdict.STALE:
            log.debug(
                f"Ignoring stale controller-sync seq {envelope.sequence} "
                f"(last {self.state.last_sequence})"
            )
            return admission.verdict
        if not admission.accepted:
            return admission.verdict

        self.state = admission.state
        log.info(f"Syncing from another controller (session: {envelope.session_id[:8]}...)")
        self._apply(envelope)
        return admission.verdict

    async def attach(self, transport: WallTransport, channel: str) -> bool:
        """Subscribe to *channel*. A failed subscribe is logged; sync stays off."""
        try:
            self._subscription = await transport.subscribe(
                channel, WALL_RELAY_EVENT, self.handle
            )
        except TransportError as e:
            log.error(f"Controller sync disabled: {e}")
            return False
        return True

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None
