import asyncio

import pytest

from multiwall.bases.models import EnvelopeType, WallEnvelope
from multiwall.config import WallTransportConfigModel
from multiwall.transport import (
    LocalBroadcastHub,
    LocalBroadcastTransport,
    RelayTransport,
    TransportError,
    create_transport,
)

pytestmark = pytest.mark.asyncio

CHANNEL = "multiwall::shop::main"
EVENT = "rotation-event"


@pytest.fixture
def hub():
    return LocalBroadcastHub()


@pytest.fixture
def envelope():
    return WallEnvelope(type=EnvelopeType.INIT, session_id="s", sequence=1, products=["A"])


async def test_message_reaches_other_endpoints_not_the_sender(hub, envelope):
    sender = LocalBroadcastTransport(hub)
    receiver = LocalBroadcastTransport(hub)
    sent_back, received = [], []
    await sender.subscribe(CHANNEL, EVENT, sent_back.append)
    await receiver.subscribe(CHANNEL, EVENT, received.append)

    await sender.publish(CHANNEL, EVENT, envelope)
    await hub.drain()

    assert sent_back == []
    assert received == [envelope.to_wire()]


async def test_delivery_is_asynchronous(hub, envelope):
    sender = LocalBroadcastTransport(hub)
    receiver = LocalBroadcastTransport(hub)
    received = []
    await receiver.subscribe(CHANNEL, EVENT, received.append)

    await sender.publish(CHANNEL, EVENT, envelope)
    assert received == []

    await hub.drain()
    assert len(received) == 1


async def test_each_receiver_gets_its_own_copy(hub, envelope):
    sender = LocalBroadcastTransport(hub)
    first, second = [], []
    await LocalBroadcastTransport(hub).subscribe(CHANNEL, EVENT, first.append)
    await LocalBroadcastTransport(hub).subscribe(CHANNEL, EVENT, second.append)

    await sender.publish(CHANNEL, EVENT, envelope)
    await hub.drain()

    assert first == second
    assert first[0] is not second[0]


async def test_other_channels_and_events_are_not_delivered(hub, envelope):
    sender = LocalBroadcastTransport(hub)
    receiver = LocalBroadcastTransport(hub)
    received = []
    await receiver.subscribe("multiwall::shop::other", EVENT, received.append)
    await receiver.subscribe(CHANNEL, "other-event", received.append)

    await sender.publish(CHANNEL, EVENT, envelope)
    await hub.drain()

    assert received == []


async def test_async_handlers_are_awaited(hub, envelope):
    done = asyncio.Event()

    async def handler(data):
        await asyncio.sleep(0)
        done.set()

    await LocalBroadcastTransport(hub).subscribe(CHANNEL, EVENT, handler)
    await LocalBroadcastTransport(hub).publish(CHANNEL, EVENT, envelope)
    await asyncio.wait_for(done.wait(), timeout=1)


async def test_failing_handler_does_not_stop_other_deliveries(hub, envelope, caplog):
    def broken(data):
        raise RuntimeError("handler bug")

    received = []
    await LocalBroadcastTransport(hub).subscribe(CHANNEL, EVENT, broken)
    await LocalBroadcastTransport(hub).subscribe(CHANNEL, EVENT, received.append)

    await LocalBroadcastTransport(hub).publish(CHANNEL, EVENT, envelope)
    await hub.drain()

    assert len(received) == 1
    assert "Subscriber handler raised an exception" in caplog.text


async def test_unsubscribe_stops_delivery(hub, envelope):
    receiver = LocalBroadcastTransport(hub)
    received = []
    subscription = await receiver.subscribe(CHANNEL, EVENT, received.append)

    await subscription.unsubscribe()
    await subscription.unsubscribe()
    await LocalBroadcastTransport(hub).publish(CHANNEL, EVENT, envelope)
    await hub.drain()

    assert received == []
    assert hub.subscriber_count(CHANNEL) == 0


async def test_closed_transport_rejects_use(hub, envelope):
    transport = LocalBroadcastTransport(hub)
    subscription = await transport.subscribe(CHANNEL, EVENT, lambda data: None)
    await transport.close()

    assert subscription.active is False
    assert hub.subscriber_count(CHANNEL) == 0
    with pytest.raises(TransportError):
        await transport.publish(CHANNEL, EVENT, envelope)
    with pytest.raises(TransportError):
        await transport.subscribe(CHANNEL, EVENT, lambda data: None)


async def test_unserializable_payload_raises_transport_error(hub):
    with pytest.raises(TransportError):
        await LocalBroadcastTransport(hub).publish(CHANNEL, EVENT, {"bad": object()})


async def test_create_transport_follows_configuration(hub):
    local = create_transport(WallTransportConfigModel(mode="local"), hub=hub)
    relay = create_transport(WallTransportConfigModel(mode="relay"))
    try:
        assert isinstance(local, LocalBroadcastTransport)
        assert local.hub is hub
        assert isinstance(relay, RelayTransport)
    finally:
        await local.close()
        await relay.close()
