import itertools

import pytest

from multiwall.config import WallTransportConfigModel
from multiwall.routing import (
    channel_for,
    configured_channel,
    escape_id,
    local_channel,
    relay_channel,
)


def test_relay_form():
    assert relay_channel("shop", "main") == "rotation-shop-main"


def test_local_form_is_scoped_by_instance():
    assert local_channel("shop", "main") == "multiwall::shop::main"


def test_channel_for_is_deterministic():
    assert channel_for("shop", "main") == channel_for("shop", "main")
    assert channel_for("shop", "main", mode="local") == channel_for(
        "shop", "main", mode="local"
    )


def test_custom_prefix():
    assert channel_for("shop", "main", prefix="wall") == "wall-shop-main"
    assert channel_for("shop", "main", mode="local", prefix="wall") == "wall::shop::main"


def test_unknown_mode():
    with pytest.raises(ValueError):
        channel_for("shop", "main", mode="carrier")


@pytest.mark.parametrize("instance_id, group_id", [("", "main"), ("shop", "")])
def test_empty_ids_are_rejected(instance_id, group_id):
    with pytest.raises(ValueError):
        channel_for(instance_id, group_id)


def test_escape_id():
    assert escape_id("a-b") == "a=2Db"
    assert escape_id("a:b") == "a=3Ab"
    assert escape_id("a=2Db") == "a=3D2Db"


def test_separators_inside_ids_do_not_collide():
    # without escaping both pairs would map to "rotation-a-b-c"
    assert channel_for("a-b", "c") != channel_for("a", "b-c")
    assert channel_for("a::b", "c", mode="local") != channel_for("a", "b::c", mode="local")


@pytest.mark.parametrize("mode", ["relay", "local"])
def test_distinct_pairs_get_distinct_channels(mode):
    ids = ["a", "b", "a-b", "b-a", "a:b", "a=", "=2D", "-", ":", "a::b"]
    pairs = list(itertools.product(ids, ids))
    channels = {channel_for(i, g, mode=mode) for i, g in pairs}
    assert len(channels) == len(pairs)


def test_configured_channel_follows_transport_mode():
    relay = WallTransportConfigModel(mode="relay", channel_prefix="rot")
    local = WallTransportConfigModel(mode="local", local_prefix="wall")
    assert configured_channel("shop", "main", relay) == "rot-shop-main"
    assert configured_channel("shop", "main", local) == "wall::shop::main"


def test_routing_exports_only_channel_helpers():
    import multiwall.routing as routing

    assert sorted(routing.__all__) == [
        "channel_for",
        "configured_channel",
        "escape_id",
        "local_channel",
        "relay_channel",
    ]
