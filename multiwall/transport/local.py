# multiwall/transport/local.py

"""
Same-device broadcast transport.

Every `LocalBroadcastTransport` attached to one `LocalBroadcastHub` behaves
like a browser tab on one BroadcastChannel: messages are serialized to JSON,
delivered asynchronously on the event loop to every *other* endpoint
subscribed to the channel, and never echoed back to the sender.
"""

import asyncio
import itertools
import json
from typing import Any

from multiwall.bases.models import EnvelopeHandler, WallEnvelope
from multiwall.logger import get_logger
from multiwall.transport.base import (
    Subscription,
    TransportError,
    WallTransport,
    dispatch,
    envelope_to_wire,
)

log = get_logger(__name__)


class LocalBroadcastHub:
    """
    Async-safe registry of local subscriptions.

    Writes are serialized under one asyncio.Lock; publishers take a snapshot
    under the lock and fan out lock-free.
    """

    def __init__(self) -> None:
        # channel → [(endpoint_id, event, handler, subscription)]
        self._subscribers: dict[str, list[tuple[int, str, EnvelopeHandler, Subscription]]] = {}
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._ids = itertools.count(1)

    def new_endpoint_id(self) -> int:
        return next(self._ids)

    async def add(
        self, endpoint_id: int, subscription: Subscription, handler: EnvelopeHandler
    ) -> None:
        async with self._lock:
            self._subscribers.setdefault(subscription.channel, []).append(
                (endpoint_id, subscription.event, handler, subscription)
            )

    async def remove(self, subscription: Subscription) -> None:
        async with self._lock:
            entries = self._subscribers.get(subscription.channel, [])
            entries[:] = [e for e in entries if e[3] is not subscription]
            if not entries:
                self._subscribers.pop(subscription.channel, None)

    async def remove_endpoint(self, endpoint_id: int) -> None:
        async with self._lock:
            for channel in list(self._subscribers):
                entries = [e for e in self._subscribers[channel] if e[0] != endpoint_id]
                for entry in self._subscribers[channel]:
                    if entry[0] == endpoint_id:
                        entry[3].active = False
                if entries:
                    self._subscribers[channel] = entries
                else:
                    del self._subscribers[channel]

    async def broadcast(
        self, sender_id: int, channel: str, event: str, raw: str
    ) -> int:
        """Schedule delivery of *raw* to every other endpoint. Returns the fan-out count."""
        async with self._lock:
            targets = [
                handler
                for endpoint_id, ev, handler, _ in self._subscribers.get(channel, [])
                if endpoint_id != sender_id and ev == event
            ]

        loop = asyncio.get_running_loop()
        for handler in targets:
            # each receiver decodes its own copy, like a structured clone
            task = loop.create_task(dispatch(handler, json.loads(raw)))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(targets)

    async def drain(self) -> None:
        """Wait until every scheduled delivery (including ones they trigger) ran."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))


class LocalBroadcastTransport(WallTransport):
    """One endpoint on a `LocalBroadcastHub`."""

    def __init__(self, hub: LocalBroadcastHub) -> None:
        self.hub = hub
        self.endpoint_id = hub.new_endpoint_id()
        self._closed = False

    async def publish(
        self, channel: str, event: str, envelope: WallEnvelope | dict[str, Any]
    ) -> None:
        if self._closed:
            raise TransportError("Local transport is closed")
        try:
            raw = json.dumps(envelope_to_wire(envelope))
        except (TypeError, ValueError) as e:
            raise TransportError(f"Envelope is not JSON serializable: {e}") from e
        count = await self.hub.broadcast(self.endpoint_id, channel, event, raw)
        log.debug(f"Local publish on {channel} delivered to {count} endpoint(s)")

    async def subscribe(
        self, channel: str, event: str, handler: EnvelopeHandler
    ) -> Subscription:
        if self._closed:
            raise TransportError("Local transport is closed")
        subscription = Subscription(channel, event, self.hub.remove)
        await self.hub.add(self.endpoint_id, subscription, handler)
        log.debug(f"Local endpoint {self.endpoint_id} subscribed to {channel}")
        return subscription

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.hub.remove_endpoint(self.endpoint_id)
