from multiwall.sync.reconciler import ControllerReconciler
from multiwall.sync.rotation import (
    LoggingPresenter,
    Presenter,
    RotationStateMachine,
    ScreenSyncState,
    SlideFrame,
    product_index,
)
from multiwall.sync.sequencer import (
    Admission,
    AdmissionPolicy,
    SequenceClock,
    SequencerState,
    Verdict,
    admit,
    new_session_id,
)
from multiwall.sync.timer import (
    AutonomousTimer,
    global_index,
    next_boundary_delay,
    normalize_interval,
)

__all__ = [
    "Admission",
    "AdmissionPolicy",
    "AutonomousTimer",
    "ControllerReconciler",
    "LoggingPresenter",
    "Presenter",
    "RotationStateMachine",
    "ScreenSyncState",
    "SequenceClock",
    "SequencerState",
    "SlideFrame",
    "Verdict",
    "admit",
    "global_index",
    "new_session_id",
    "next_boundary_delay",
    "normalize_interval",
    "product_index",
]
