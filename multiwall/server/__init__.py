from multiwall.server.hub import WallRelayHub, relay_hub
from multiwall.server.server import get_store, relay_server

__all__ = ["WallRelayHub", "get_store", "relay_hub", "relay_server"]
