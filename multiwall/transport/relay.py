# multiwall/transport/relay.py

"""
Hosted relay transport.

Publishing is one HTTP POST to the relay's trigger endpoint. Subscribing opens
a websocket to the relay, sends `{"channel", "event"}` as the first frame and
dispatches the `payload` of every frame received afterwards.
"""

import asyncio
import json
from typing import Any

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from multiwall.bases.models import EnvelopeHandler, WallEnvelope
from multiwall.config import WallTransportConfigModel
from multiwall.logger import get_logger
from multiwall.transport.base import (
    Subscription,
    TransportError,
    WallTransport,
    dispatch,
    envelope_to_wire,
)

log = get_logger(__name__)

RECONNECT_BACKOFF_START = 1.0
RECONNECT_BACKOFF_MAX = 30.0


class RelayTransport(WallTransport):
    def __init__(
        self,
        settings: WallTransportConfigModel,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self._owns_client = http_client is None
        self._readers: dict[Subscription, asyncio.Task] = {}
        self._closed = False

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.publish_timeout)
        return self._client

    async def publish(
        self, channel: str, event: str, envelope: WallEnvelope | dict[str, Any]
    ) -> None:
        if self._closed:
            raise TransportError("Relay transport is closed")
        wire = envelope_to_wire(envelope)
        body = {
            "channel": channel,
            "event": event,
            "type": wire.get("type"),
            "payload": wire,
        }
        try:
            response = await self._http().post(self.settings.trigger_url, json=body)
        except httpx.HTTPError as e:
            raise TransportError(f"Relay publish failed: {e}") from e
        if not response.is_success:
            raise TransportError(
                f"Relay publish rejected: HTTP {response.status_code} {response.text[:200]}"
            )
        log.debug(f"Relay publish {wire.get('type')} on {channel} ok")

    async def subscribe(
        self, channel: str, event: str, handler: EnvelopeHandler
    ) -> Subscription:
        if self._closed:
            raise TransportError("Relay transport is closed")
        # the first connection is made eagerly so setup failures surface here
        ws = await self._connect(channel, event)
        subscription = Subscription(channel, event, self._drop)
        self._readers[subscription] = asyncio.create_task(
            self._read_loop(ws, subscription, handler)
        )
        log.info(f"Subscribed to relay channel {channel}")
        return subscription

    async def _connect(self, channel: str, event: str) -> Any:
        try:
            ws = await websockets.connect(self.settings.ws_url, ping_interval=20)
            await ws.send(json.dumps({"channel": channel, "event": event}))
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(
                f"Relay subscribe to {self.settings.ws_url} failed: {e}"
            ) from e
        return ws

    async def _read_loop(
        self, ws: Any, subscription: Subscription, handler: EnvelopeHandler
    ) -> None:
        backoff = RECONNECT_BACKOFF_START
        while subscription.active:
            if ws is None:
                log.warning(f"Reconnecting to relay in {backoff:.0f}s")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, RECONNECT_BACKOFF_MAX)
                try:
                    ws = await self._connect(subscription.channel, subscription.event)
                except TransportError as e:
                    log.error(str(e))
                    continue
            try:
                async for raw in ws:
                    backoff = RECONNECT_BACKOFF_START
                    await self._deliver(raw, subscription, handler)
            except ConnectionClosed as e:
                log.warning(f"Relay connection for {subscription.channel} closed: {e}")
            finally:
                await ws.close()
                ws = None

    async def _deliver(
        self, raw: str | bytes, subscription: Subscription, handler: EnvelopeHandler
    ) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            log.warning(f"Dropping non-JSON relay frame: {str(raw)[:200]}")
            return
        if not isinstance(frame, dict):
            log.warning(f"Dropping non-object relay frame: {frame!r}")
            return
        if frame.get("event", subscription.event) != subscription.event:
            return
        payload = frame.get("payload")
        if not isinstance(payload, dict):
            log.warning(f"Dropping relay frame without payload: {frame!r}")
            return
        await dispatch(handler, payload)

    async def _drop(self, subscription: Subscription) -> None:
        task = self._readers.pop(subscription, None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._readers):
            await subscription.unsubscribe()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
