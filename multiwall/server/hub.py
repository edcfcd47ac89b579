# multiwall/server/hub.py

import asyncio
from typing import Final

from fastapi import WebSocket

from multiwall.bases.models import RelayFrame
from multiwall.logger import get_logger

log = get_logger(__name__)


class WallRelayHub:
    """
    Async-safe registry of relay subscribers (FastAPI flavour).

    channel → {subscriber_id → (event, WebSocket)}

    All writes are serialized under a single asyncio.Lock. Fan-out takes a
    snapshot under the lock and then sends lock-free; a subscriber whose send
    fails is dropped.
    """

    def __init__(self) -> None:
        self._channels: dict[str, dict[str, tuple[str, WebSocket]]] = {}
        # subscriber_id → channel
        self._subscriber_channel: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def register(
        self, *, subscriber_id: str, channel: str, event: str, socket: WebSocket
    ) -> None:
        async with self._lock:
            self._channels.setdefault(channel, {})[subscriber_id] = (event, socket)
            self._subscriber_channel[subscriber_id] = channel

    async def unregister(self, *, subscriber_id: str) -> None:
        async with self._lock:
            channel = self._subscriber_channel.pop(subscriber_id, None)
            if channel is None:
                return
            subscribers = self._channels.get(channel, {})
            subscribers.pop(subscriber_id, None)
            if not subscribers:
                self._channels.pop(channel, None)

    async def snapshot(self, channel: str, event: str) -> dict[str, WebSocket]:
        async with self._lock:
            return {
                sid: socket
                for sid, (ev, socket) in self._channels.get(channel, {}).items()
                if ev == event
            }

    def subscriber_count(self, channel: str | None = None) -> int:
        if channel is None:
            return len(self._subscriber_channel)
        return len(self._channels.get(channel, {}))

    async def fan_out(self, frame: RelayFrame) -> int:
        """Send *frame* to every subscriber of its channel/event. Returns the count delivered."""
        targets = await self.snapshot(frame.channel, frame.event)
        data = frame.model_dump(mode="json")
        delivered = 0
        for subscriber_id, socket in targets.items():
            if await self._safe_send(socket, data):
                delivered += 1
            else:
                await self.unregister(subscriber_id=subscriber_id)
        return delivered

    async def _safe_send(self, socket: WebSocket, data: dict) -> bool:
        """Best-effort send; errors are logged, never raised."""
        try:
            await socket.send_json(data)
            return True
        except Exception as e:
            log.error(f"Error sending relay frame: {e}")
            return False


relay_hub: Final[WallRelayHub] = WallRelayHub()
