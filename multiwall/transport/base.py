# multiwall/transport/base.py

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from multiwall.bases.models import EnvelopeHandler, WallEnvelope
from multiwall.logger import get_logger

log = get_logger(__name__)


class TransportError(Exception):
    """Raised when a publish or subscribe cannot be handed to the transport."""

    pass


class Subscription:
    """Handle returned by `WallTransport.subscribe`; call `unsubscribe()` to detach."""

    def __init__(
        self,
        channel: str,
        event: str,
        on_unsubscribe: Callable[["Subscription"], Awaitable[None]],
    ) -> None:
        self.channel = channel
        self.event = event
        self._on_unsubscribe = on_unsubscribe
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        await self._on_unsubscribe(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.channel}/{self.event} {state}>"


def envelope_to_wire(envelope: WallEnvelope | dict[str, Any]) -> dict[str, Any]:
    if isinstance(envelope, WallEnvelope):
        return envelope.to_wire()
    return dict(envelope)


async def dispatch(handler: EnvelopeHandler, data: dict[str, Any]) -> None:
    """
    Invoke a subscriber handler, sync or async.

    Handler errors are logged and never propagate into the transport: one bad
    handler must not stop delivery to the others.
    """
    try:
        result = handler(data)
        if asyncio.iscoroutine(result):
            await result
    except Exception:
        log.exception("Subscriber handler raised an exception")


class WallTransport(ABC):
    """
    Capability interface for moving envelopes between controllers and screens.

    Delivery is at-least-once at best, unordered and without acknowledgement.
    Nothing above this interface knows which implementation is in use.
    """

    @abstractmethod
    async def publish(
        self, channel: str, event: str, envelope: WallEnvelope | dict[str, Any]
    ) -> None:
        """
        Hand one message to the transport.

        Raises:
            TransportError: the message could not be handed over.
        """

    @abstractmethod
    async def subscribe(
        self, channel: str, event: str, handler: EnvelopeHandler
    ) -> Subscription:
        """
        Deliver every message published on *channel*/*event* to *handler* as a
        decoded JSON dict.

        Raises:
            TransportError: the subscription could not be set up.
        """

    @abstractmethod
    async def close(self) -> None:
        """Drop every subscription and release connections."""

    async def __aenter__(self) -> "WallTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
