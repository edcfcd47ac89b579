from .models import (
    ConfigSnapshot,
    ContentGroup,
    ControllerState,
    EnvelopeHandler,
    EnvelopeType,
    GroupKind,
    LayoutMode,
    RelayFrame,
    ScreenIdentity,
    WallEnvelope,
    WallInstance,
    parse_envelope,
)

__all__ = (
    "ConfigSnapshot",
    "ContentGroup",
    "ControllerState",
    "EnvelopeHandler",
    "EnvelopeType",
    "GroupKind",
    "LayoutMode",
    "RelayFrame",
    "ScreenIdentity",
    "WallEnvelope",
    "WallInstance",
    "parse_envelope",
)
