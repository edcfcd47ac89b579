# multiwall/sync/sequencer.py

"""
Envelope sequencing.

Sequence numbers are a per-session logical clock: wall-clock milliseconds with
a +1 tie-break, strictly increasing within one publishing process and, because
wall time does not rewind, across restarts of that process. They are not a
global order between concurrently running publishers; receivers only rely on
"never accept a sequence at or below the last one accepted".
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from multiwall.bases.models import WallEnvelope
from multiwall.logger import get_logger

log = get_logger(__name__)


def new_session_id() -> str:
    """Mint a session id, once per controller process lifetime."""
    return str(uuid.uuid4())


class SequenceClock:
    """Issues strictly increasing, time-derived sequence numbers."""

    def __init__(self, now_ms: Callable[[], float] | None = None) -> None:
        self._now_ms = now_ms or (lambda: time.time() * 1000)
        self._last = 0

    @property
    def last(self) -> int:
        return self._last

    def next_sequence(self) -> int:
        now = int(self._now_ms())
        if now <= self._last:
            # same millisecond (or clock went backwards): bump past the last value
            self._last += 1
        else:
            self._last = now
        return self._last


class AdmissionPolicy(str, Enum):
    # screens follow whichever controller is publishing (failover)
    ADOPT_ALWAYS = "adopt_always"
    # controllers only merge state that moves forward, never revert local edits
    MERGE_FORWARD = "merge_forward"


class Verdict(str, Enum):
    ACCEPTED = "accepted"
    STALE = "stale"
    SELF_ECHO = "self_echo"


@dataclass(frozen=True)
class SequencerState:
    """What a receiver remembers about the lineage it is following."""

    session_id: str | None = None
    last_sequence: int = -1

    def note_local(self, sequence: int) -> SequencerState:
        """Advance the watermark past a locally published sequence."""
        if sequence <= self.last_sequence:
            return self
        return replace(self, last_sequence=sequence)


@dataclass(frozen=True)
class Admission:
    verdict: Verdict
    state: SequencerState
    session_changed: bool = False

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPTED


def admit(
    state: SequencerState,
    envelope: WallEnvelope,
    *,
    policy: AdmissionPolicy = AdmissionPolicy.ADOPT_ALWAYS,
    own_session_id: str | None = None,
) -> Admission:
    """
    Decide whether *envelope* may reach the state machine.

    Pure: the returned Admission carries the next SequencerState; the input
    state is never modified.
    """
    if own_session_id is not None and envelope.session_id == own_session_id:
        return Admission(Verdict.SELF_ECHO, state)

    if envelope.sequence <= state.last_sequence:
        return Admission(Verdict.STALE, state)

    session_changed = (
        state.session_id is not None and envelope.session_id != state.session_id
    )
    if session_changed:
        if policy is AdmissionPolicy.ADOPT_ALWAYS:
            log.info(
                f"Publisher takeover: {state.session_id[:8]} -> {envelope.session_id[:8]}"
            )
        else:
            log.debug(
                f"Merging forward from peer {envelope.session_id[:8]} "
                f"(seq {envelope.sequence} > {state.last_sequence})"
            )

    return Admission(
        Verdict.ACCEPTED,
        SequencerState(
            session_id=envelope.session_id, last_sequence=envelope.sequence
        ),
        session_changed=session_changed,
    )
