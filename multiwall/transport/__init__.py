# multiwall/transport/__init__.py

from typing import Final

from multiwall.config import WallTransportConfigModel, get_config
from multiwall.logger import get_logger
from multiwall.transport.base import Subscription, TransportError, WallTransport
from multiwall.transport.local import LocalBroadcastHub, LocalBroadcastTransport
from multiwall.transport.relay import RelayTransport

log = get_logger(__name__)

# process-wide hub shared by every local endpoint that is not given its own
local_hub: Final[LocalBroadcastHub] = LocalBroadcastHub()


def create_transport(
    settings: WallTransportConfigModel | None = None,
    *,
    hub: LocalBroadcastHub | None = None,
) -> WallTransport:
    """Build the transport selected by configuration (`transport.mode`)."""
    if settings is None:
        settings = get_config().transport
    if settings.mode == "relay":
        log.debug(f"Using relay transport at {settings.relay_url}")
        return RelayTransport(settings)
    log.debug("Using local broadcast transport")
    return LocalBroadcastTransport(hub or local_hub)


__all__ = [
    "LocalBroadcastHub",
    "LocalBroadcastTransport",
    "RelayTransport",
    "Subscription",
    "TransportError",
    "WallTransport",
    "create_transport",
    "local_hub",
]
