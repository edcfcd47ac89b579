# multiwall/routing/channels.py

"""
Channel routing.

Every content group gets its own broadcast domain so a message meant for one
group's screens never perturbs another group's state machine. A screen
subscribes to exactly one channel for its lifetime.
"""

from typing import Literal

from multiwall.config import WallTransportConfigModel
from multiwall.constants import (
    WALL_TRANSPORT_CHANNEL_PREFIX,
    WALL_TRANSPORT_LOCAL_PREFIX,
)

ChannelMode = Literal["local", "relay"]

# "=" goes first so escapes introduced for the other characters are not re-escaped
_ESCAPES = (("=", "=3D"), ("-", "=2D"), (":", "=3A"))


def escape_id(value: str) -> str:
    """Escape separator characters so joined ids stay unambiguous."""
    if not value:
        raise ValueError("channel ids cannot be empty")
    for char, replacement in _ESCAPES:
        value = value.replace(char, replacement)
    return value


def relay_channel(
    instance_id: str, group_id: str, *, prefix: str = WALL_TRANSPORT_CHANNEL_PREFIX
) -> str:
    """Hosted relay form: ``<prefix>-<instanceId>-<groupId>``."""
    return f"{prefix}-{escape_id(instance_id)}-{escape_id(group_id)}"


def local_channel(
    instance_id: str, group_id: str, *, prefix: str = WALL_TRANSPORT_LOCAL_PREFIX
) -> str:
    """
    Same-device form: ``<prefix>::<groupId>``.

    The prefix is scoped by instance (``multiwall::<instanceId>``) so two
    tenants on one device cannot collide on a shared group id.
    """
    scoped_prefix = f"{prefix}::{escape_id(instance_id)}"
    return f"{scoped_prefix}::{escape_id(group_id)}"


def channel_for(
    instance_id: str,
    group_id: str,
    *,
    mode: ChannelMode = "relay",
    prefix: str | None = None,
) -> str:
    """
    Derive the channel name for an (instance, group) pair.

    Deterministic and side-effect free. The mode only selects the naming
    convention each transport's backend accepts; the protocol on top is
    identical either way.
    """
    if mode == "local":
        return local_channel(
            instance_id, group_id, prefix=prefix or WALL_TRANSPORT_LOCAL_PREFIX
        )
    if mode == "relay":
        return relay_channel(
            instance_id, group_id, prefix=prefix or WALL_TRANSPORT_CHANNEL_PREFIX
        )
    raise ValueError(f"Unknown channel mode: {mode!r}")


def configured_channel(
    instance_id: str, group_id: str, settings: WallTransportConfigModel
) -> str:
    """Channel for the configured transport mode and its prefix."""
    prefix = settings.channel_prefix if settings.mode == "relay" else settings.local_prefix
    return channel_for(instance_id, group_id, mode=settings.mode, prefix=prefix)
