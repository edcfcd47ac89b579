import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from multiwall.bases.models import RelayFrame
from multiwall.server.hub import WallRelayHub

pytestmark = pytest.mark.asyncio


@pytest.fixture
def hub():
    return WallRelayHub()


@pytest.fixture
def make_socket():
    def _make(fail: bool = False):
        socket = MagicMock()
        socket.send_json = AsyncMock(side_effect=RuntimeError("gone") if fail else None)
        return socket

    return _make


def frame(channel="rotation-shop-main", event="rotation-event"):
    return RelayFrame(channel=channel, event=event, type="init", payload={"sequence": 1})


async def test_fan_out_reaches_channel_subscribers_only(hub, make_socket):
    main, other = make_socket(), make_socket()
    await hub.register(subscriber_id="a", channel="rotation-shop-main", event="rotation-event", socket=main)
    await hub.register(subscriber_id="b", channel="rotation-shop-other", event="rotation-event", socket=other)

    delivered = await hub.fan_out(frame())

    assert delivered == 1
    main.send_json.assert_awaited_once()
    sent = main.send_json.await_args.args[0]
    assert sent["channel"] == "rotation-shop-main"
    assert sent["payload"] == {"sequence": 1}
    other.send_json.assert_not_called()


async def test_fan_out_filters_by_event(hub, make_socket):
    socket = make_socket()
    await hub.register(subscriber_id="a", channel="rotation-shop-main", event="other", socket=socket)
    assert await hub.fan_out(frame()) == 0
    socket.send_json.assert_not_called()


async def test_failed_send_drops_the_subscriber(hub, make_socket, caplog):
    good, bad = make_socket(), make_socket(fail=True)
    await hub.register(subscriber_id="good", channel="rotation-shop-main", event="rotation-event", socket=good)
    await hub.register(subscriber_id="bad", channel="rotation-shop-main", event="rotation-event", socket=bad)

    assert await hub.fan_out(frame()) == 1
    assert hub.subscriber_count("rotation-shop-main") == 1
    assert "Error sending relay frame" in caplog.text


async def test_unregister_cleans_up_empty_channels(hub, make_socket):
    await hub.register(subscriber_id="a", channel="c", event="rotation-event", socket=make_socket())
    await hub.unregister(subscriber_id="a")
    await hub.unregister(subscriber_id="a")
    assert hub.subscriber_count() == 0
    assert hub.subscriber_count("c") == 0


async def test_concurrent_registration(hub, make_socket):
    await asyncio.gather(
        *[
            hub.register(subscriber_id=str(i), channel=f"c{i % 3}", event="rotation-event", socket=make_socket())
            for i in range(30)
        ]
    )
    assert hub.subscriber_count() == 30
    assert hub.subscriber_count("c0") == 10
