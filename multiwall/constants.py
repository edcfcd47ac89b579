# multiwall/constants.py

"""
Constants module.

This module contains the defaults used throughout multiwall.
It's also a one to one mapping of env vars available to the application
(prefix ``WALL_``, nested sections joined by ``_``).
"""

from pathlib import Path

WALL_BASE_DIR: Path = Path(__file__).resolve().parent.parent
WALL_DEV_MODE: bool = False
WALL_LOG_LEVEL: str = "INFO"

# DATA
WALL_DATA_DIR: Path = WALL_BASE_DIR / "data"

# CONFIG
WALL_CONFIG_DIR: Path = WALL_BASE_DIR / "config"
WALL_CONFIG_TOML_FILE: Path = WALL_CONFIG_DIR / "multiwall.config.toml"
WALL_CONFIG_ENV_FILE: Path = WALL_CONFIG_DIR / "multiwall.config.env"

# TRANSPORT
WALL_TRANSPORT_MODE: str = "local"
WALL_TRANSPORT_RELAY_URL: str = "http://localhost:3000"
WALL_TRANSPORT_TRIGGER_PATH: str = "/trigger"
WALL_TRANSPORT_WS_PATH: str = "/ws"
WALL_TRANSPORT_CHANNEL_PREFIX: str = "rotation"
WALL_TRANSPORT_LOCAL_PREFIX: str = "multiwall"
WALL_TRANSPORT_PUBLISH_TIMEOUT: float = 5.0

# event name used on every rotation channel
WALL_RELAY_EVENT: str = "rotation-event"

# TIMER (milliseconds)
WALL_TIMER_DEFAULT_INTERVAL_MS: int = 10_000
WALL_TIMER_DRIFT_CHECK_MS: int = 5_000
WALL_TIMER_TRANSITION_MS: int = 700

# SERVER
WALL_SERVER_HOST: str = "localhost"
WALL_SERVER_PORT: int = 3000

# SCREEN
WALL_SCREEN_MAX_POSITION: int = 99
