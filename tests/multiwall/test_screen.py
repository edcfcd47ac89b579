import pytest

from multiwall.bases.models import (
    ConfigSnapshot,
    ContentGroup,
    EnvelopeType,
    GroupKind,
    LayoutMode,
    ScreenIdentity,
    WallEnvelope,
)
from multiwall.clock import ManualClock
from multiwall.config import WallLaunchConfig
from multiwall.screen import WallScreen, resolve_group
from multiwall.sync.rotation import LoggingPresenter
from multiwall.transport import LocalBroadcastHub, LocalBroadcastTransport, TransportError

T0 = 1_700_000_000_000


@pytest.fixture
def clock():
    return ManualClock(start=T0)


@pytest.fixture
def settings():
    return WallLaunchConfig(transport={"mode": "local"})


@pytest.fixture
def hub():
    return LocalBroadcastHub()


@pytest.fixture
def main_group():
    return ContentGroup(id="main", products=["A", "B", "C"])


@pytest.fixture
def make_screen(clock, settings, hub, main_group):
    def _make(position=0, group=None, transport=None):
        group = group or main_group
        return WallScreen(
            ScreenIdentity(instance_id="shop", group_id=group.id, position=position),
            group,
            transport or LocalBroadcastTransport(hub),
            clock=clock,
            scheduler=clock,
            presenter=LoggingPresenter(f"screen#{position}"),
            settings=settings,
        )

    return _make


def envelope(envelope_type=EnvelopeType.INIT, *, session_id="ctrl", sequence=1, **kwargs):
    kwargs.setdefault("products", ["A", "B", "C"])
    kwargs.setdefault("group_id", "main")
    if envelope_type in (EnvelopeType.INIT, EnvelopeType.TICK):
        kwargs.setdefault("start_time", T0)
    return WallEnvelope(
        type=envelope_type, session_id=session_id, sequence=sequence, ts=T0, **kwargs
    ).to_wire()


# --- resolve_group --- #


@pytest.fixture
def snapshot():
    return ConfigSnapshot(
        ad_groups=[
            ContentGroup(id="main", products=["A"]),
            ContentGroup(id="logo", kind=GroupKind.STATIC, products=["L"]),
        ],
        screen_assignments={3: "logo", 4: "ghost"},
    )


def test_resolve_group_prefers_explicit_id(snapshot):
    assert resolve_group(snapshot, 3, "main").id == "main"
    assert resolve_group(snapshot, 0, "missing") is None


def test_resolve_group_by_assignment_then_first(snapshot):
    assert resolve_group(snapshot, 3).id == "logo"
    assert resolve_group(snapshot, 4).id == "main"
    assert resolve_group(snapshot, 0).id == "main"
    assert resolve_group(ConfigSnapshot(), 0) is None


# --- Startup --- #


@pytest.mark.asyncio
async def test_start_shows_waiting_and_subscribes(make_screen, hub):
    screen = make_screen()
    assert await screen.start() is True

    assert screen.presenter.frames[-1].status == "Waiting for controller..."
    assert screen.presenter.frames[-1].current is None
    assert hub.subscriber_count("multiwall::shop::main") == 1

    await screen.close()
    assert hub.subscriber_count("multiwall::shop::main") == 0


@pytest.mark.asyncio
async def test_subscribe_failure_is_reported(make_screen):
    class BrokenTransport:
        async def subscribe(self, channel, event, handler):
            raise TransportError("relay down")

    screen = make_screen(transport=BrokenTransport())
    assert await screen.start() is False


@pytest.mark.asyncio
async def test_static_group_shows_first_product_and_never_listens(make_screen, hub, clock):
    logo = ContentGroup(id="logo", kind=GroupKind.STATIC, products=["L", "M"])
    screen = make_screen(group=logo)

    assert await screen.start() is True

    frame = screen.presenter.frames[-1]
    assert (frame.prev, frame.current, frame.next) == ("L", "L", "L")
    assert hub.subscriber_count("multiwall::shop::logo") == 0
    assert screen.handle(envelope(group_id="logo")) is False
    assert clock.pending == 0


# --- Inbound envelopes --- #


def test_init_starts_rotation_at_the_current_slot(make_screen, clock):
    screen = make_screen(position=1)
    clock.jump(25_000)

    assert screen.handle(envelope()) is True

    assert screen.state.running is True
    assert screen.current() == "A"  # (2 + 1) % 3


def test_duplicate_and_older_envelopes_are_dropped(make_screen):
    screen = make_screen()
    assert screen.handle(envelope(sequence=5)) is True
    assert screen.handle(envelope(sequence=5)) is False
    assert screen.handle(envelope(EnvelopeType.STOP, sequence=4)) is False
    assert screen.state.running is True


def test_other_groups_and_controller_sync_are_ignored(make_screen):
    screen = make_screen()
    assert screen.handle(envelope(group_id="other")) is False
    assert screen.handle(envelope(EnvelopeType.CONTROLLER_SYNC, sequence=9)) is False
    assert screen.state.sequencer.last_sequence == -1
    assert screen.state.running is False


def test_malformed_input_is_ignored(make_screen):
    screen = make_screen()
    assert screen.handle("not json") is False
    assert screen.handle({"type": "init"}) is False


def test_stop_freezes_the_screen(make_screen, clock):
    screen = make_screen()
    screen.handle(envelope(sequence=1))
    clock.advance(12_000)
    clock.advance(700)

    screen.handle(envelope(EnvelopeType.STOP, sequence=2))

    assert screen.state.running is False
    assert screen.current() == "B"
    clock.advance(60_000)
    assert screen.current() == "B"


def test_tick_with_epoch_joins_a_running_rotation(make_screen, clock):
    screen = make_screen()
    clock.jump(31_000)

    screen.handle(envelope(EnvelopeType.TICK, sequence=3))

    assert screen.state.running is True
    assert screen.displayed_index() == 0  # 3 % 3


def test_tick_while_running_rechecks_the_index(make_screen, clock):
    screen = make_screen()
    screen.handle(envelope(sequence=1))
    clock.jump(20_000)

    screen.handle(envelope(EnvelopeType.TICK, sequence=2))
    clock.advance(700)

    assert screen.state.committed_index == 2


def test_config_update_changes_products_and_layout(make_screen):
    screen = make_screen()
    screen.handle(envelope(sequence=1))

    screen.handle(
        envelope(
            EnvelopeType.CONFIG_UPDATE,
            sequence=2,
            products=["X", "Y"],
            layout_mode=LayoutMode.IMAGE,
            production_mode=True,
        )
    )

    assert screen.state.products == ["X", "Y"]
    assert screen.state.layout_mode is LayoutMode.IMAGE
    assert screen.state.production_mode is True
    assert screen.current() == "X"


def test_config_update_with_epoch_joins_a_running_rotation(make_screen, clock):
    screen = make_screen()
    clock.jump(25_000)

    screen.handle(
        envelope(
            EnvelopeType.CONFIG_UPDATE,
            sequence=4,
            products=["A", "B", "C", "D"],
            start_time=T0,
        )
    )

    assert screen.state.running is True
    assert screen.current() == "C"
    assert clock.pending > 0


def test_config_update_without_epoch_only_stores(make_screen, clock):
    screen = make_screen()
    screen.handle(envelope(EnvelopeType.CONFIG_UPDATE, sequence=4, products=["X"]))
    assert screen.state.running is False
    assert screen.state.products == ["X"]
    assert clock.pending == 0


def test_publisher_takeover(make_screen, caplog):
    screen = make_screen()
    screen.handle(envelope(session_id="first", sequence=100))

    with caplog.at_level("INFO"):
        assert screen.handle(envelope(session_id="second", sequence=101)) is True

    assert screen.state.sequencer.session_id == "second"
    assert "Publisher takeover" in caplog.text


@pytest.mark.asyncio
async def test_envelopes_arrive_through_the_transport(make_screen, hub):
    screen = make_screen()
    await screen.start()

    publisher = LocalBroadcastTransport(hub)
    await publisher.publish(
        "multiwall::shop::main",
        "rotation-event",
        WallEnvelope.model_validate(envelope()),
    )
    await hub.drain()

    assert screen.state.running is True
    assert screen.current() == "A"
    await screen.close()
