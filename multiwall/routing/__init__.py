from multiwall.routing.channels import (
    channel_for,
    configured_channel,
    escape_id,
    local_channel,
    relay_channel,
)

__all__ = (
    "channel_for",
    "configured_channel",
    "escape_id",
    "local_channel",
    "relay_channel",
)
