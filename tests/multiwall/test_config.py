import os
from pathlib import Path

import pytest
from pydantic import ValidationError

import multiwall.config as wall_config
from multiwall.config import (
    WallLaunchConfig,
    WallTimerConfigModel,
    WallTransportConfigModel,
    _transfer_config_to_env,
    get_config,
)
from multiwall.constants import (
    WALL_SERVER_PORT,
    WALL_TIMER_DEFAULT_INTERVAL_MS,
    WALL_TIMER_DRIFT_CHECK_MS,
    WALL_TIMER_TRANSITION_MS,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Strip WALL_* vars and point the config files at a scratch directory."""
    for key in list(os.environ):
        if key.startswith("WALL_"):
            monkeypatch.delenv(key)
    monkeypatch.setitem(
        WallLaunchConfig.model_config, "toml_file", tmp_path / "missing.toml"
    )
    monkeypatch.setitem(WallLaunchConfig.model_config, "env_file", tmp_path / "missing.env")
    return monkeypatch


# --- Defaults --- #


def test_defaults(clean_env):
    config = WallLaunchConfig()

    assert config.dev_mode is False
    assert config.log_level == "INFO"
    assert config.transport.mode == "local"
    assert config.timer.default_interval_ms == WALL_TIMER_DEFAULT_INTERVAL_MS
    assert config.timer.drift_check_ms == WALL_TIMER_DRIFT_CHECK_MS
    assert config.timer.transition_ms == WALL_TIMER_TRANSITION_MS
    assert config.server.port == WALL_SERVER_PORT


def test_nested_env_vars_reach_nested_fields(clean_env):
    clean_env.setenv("WALL_TIMER_DRIFT_CHECK_MS", "2500")
    clean_env.setenv("WALL_TRANSPORT_MODE", "relay")
    clean_env.setenv("WALL_TRANSPORT_RELAY_URL", "https://relay.example.com/")

    config = WallLaunchConfig()

    assert config.timer.drift_check_ms == 2500
    assert config.transport.mode == "relay"
    assert config.transport.relay_url == "https://relay.example.com"


def test_init_kwargs_beat_env(clean_env):
    clean_env.setenv("WALL_LOG_LEVEL", "ERROR")
    config = WallLaunchConfig(log_level="debug")
    assert config.log_level == "DEBUG"


def test_toml_file_is_read(clean_env, tmp_path):
    toml = tmp_path / "multiwall.config.toml"
    toml.write_text(
        '[transport]\nmode = "relay"\nchannel_prefix = "wall"\n\n[server]\nport = 4100\n',
        encoding="utf-8",
    )
    clean_env.setitem(WallLaunchConfig.model_config, "toml_file", toml)

    config = WallLaunchConfig()

    assert config.transport.mode == "relay"
    assert config.transport.channel_prefix == "wall"
    assert config.server.port == 4100


def test_config_is_mirrored_into_env(clean_env):
    WallLaunchConfig(transport={"mode": "relay"})
    assert os.environ["WALL_TRANSPORT_MODE"] == "relay"
    assert os.environ["WALL_DEV_MODE"] == "0"


def test_invalid_transport_mode_is_rejected(clean_env):
    with pytest.raises(ValidationError):
        WallLaunchConfig(transport={"mode": "carrier-pigeon"})


# --- Nested models --- #


def test_ws_url_is_derived_from_relay_url():
    assert (
        WallTransportConfigModel(relay_url="http://localhost:3000").ws_url
        == "ws://localhost:3000/ws"
    )
    assert (
        WallTransportConfigModel(relay_url="https://relay.example.com/").ws_url
        == "wss://relay.example.com/ws"
    )


def test_trigger_url():
    settings = WallTransportConfigModel(relay_url="http://relay:3000", trigger_path="/trigger")
    assert settings.trigger_url == "http://relay:3000/trigger"


@pytest.mark.parametrize("field", ["default_interval_ms", "drift_check_ms"])
def test_timer_periods_must_be_positive(field):
    with pytest.raises(ValidationError):
        WallTimerConfigModel(**{field: 0})


def test_transition_may_be_zero():
    assert WallTimerConfigModel(transition_ms=0).transition_ms == 0


# --- Helpers --- #


def test_transfer_config_to_env_flattens_values():
    env = _transfer_config_to_env(
        {"dev_mode": True, "timer": {"drift_check_ms": 5000}, "paths": ["a", "b"], "x": None},
        pathsep=";",
    )
    assert env == {
        "WALL_DEV_MODE": "1",
        "WALL_TIMER_DRIFT_CHECK_MS": "5000",
        "WALL_PATHS": "a;b",
        "WALL_X": "",
    }


def test_get_config_caches_and_reloads(clean_env, monkeypatch):
    monkeypatch.setattr(wall_config, "_config", None)
    first = get_config()
    assert get_config() is first
    assert get_config(reload=True) is not first


def test_data_dir_is_resolved(clean_env):
    config = WallLaunchConfig(data={"dir": "relative/data"})
    assert config.data.dir == Path("relative/data").resolve()
