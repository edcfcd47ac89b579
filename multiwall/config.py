# multiwall/config.py

"""
Config module.

Layered settings for screens, controllers and the relay server.
Priority: init kwargs > environment > dotenv file > TOML file > defaults.
"""

import os
from pathlib import Path
from typing import Literal, Mapping, Sequence

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from multiwall.constants import (
    WALL_BASE_DIR,
    WALL_CONFIG_ENV_FILE,
    WALL_CONFIG_TOML_FILE,
    WALL_DATA_DIR,
    WALL_DEV_MODE,
    WALL_LOG_LEVEL,
    WALL_SERVER_HOST,
    WALL_SERVER_PORT,
    WALL_TIMER_DEFAULT_INTERVAL_MS,
    WALL_TIMER_DRIFT_CHECK_MS,
    WALL_TIMER_TRANSITION_MS,
    WALL_TRANSPORT_CHANNEL_PREFIX,
    WALL_TRANSPORT_LOCAL_PREFIX,
    WALL_TRANSPORT_MODE,
    WALL_TRANSPORT_PUBLISH_TIMEOUT,
    WALL_TRANSPORT_RELAY_URL,
    WALL_TRANSPORT_TRIGGER_PATH,
    WALL_TRANSPORT_WS_PATH,
)


def _get_env_file_path() -> Path:
    """Get the dotenv file path from the environment or the default path."""
    return Path(os.environ.get("WALL_CONFIG_ENV_FILE", WALL_CONFIG_ENV_FILE)).resolve()


def _get_toml_file_path() -> Path:
    """Get the TOML file path from the environment or the default path."""
    return Path(
        os.environ.get("WALL_CONFIG_TOML_FILE", WALL_CONFIG_TOML_FILE)
    ).resolve()


def _transfer_config_to_env(
    data: Mapping[str, object],
    *,
    prefix: str = "WALL",
    join: str = "_",
    pathsep: str | None = None,
) -> dict[str, str]:
    """
    Recursively flattens *data* into environment variables.

    - Keys become UPPER-CASE and are joined by *join*.
    - Each resulting key is prefixed with *prefix* and that same *join*.
    - All values are turned into str:
        - bool → "1" or "0"
        - list / tuple → path-sep-joined string (default os.pathsep)
        - None → ""
        - everything else → str(value)
    """
    if pathsep is None:
        pathsep = os.pathsep

    env: dict[str, str] = {}

    def walk(node: object, parts: list[str]) -> None:
        if isinstance(node, Mapping):
            for k, v in node.items():
                walk(v, parts + [k])
        else:
            key = f"{prefix}{join}" + join.join(p.upper() for p in parts)
            if isinstance(node, bool):
                value = "1" if node else "0"
            elif isinstance(node, Sequence) and not isinstance(
                node, (str, bytes, bytearray)
            ):
                value = pathsep.join(str(item) for item in node)
            elif node is None:
                value = ""
            else:
                value = str(node)
            env[key] = value

    walk(data, [])
    return env


class WallDataConfigModel(BaseModel):
    """Data directory settings (JSON file store)."""

    dir: Path = WALL_DATA_DIR

    @field_validator("dir", mode="before")
    @classmethod
    def _validate_and_resolve_path(cls, v: str | Path) -> Path:
        """Parse the path from a string or path and normalize it to an absolute path."""
        return Path(v).resolve()


class WallTransportConfigModel(BaseModel):
    """Transport selection and relay endpoints."""

    mode: Literal["local", "relay"] = WALL_TRANSPORT_MODE
    relay_url: str = WALL_TRANSPORT_RELAY_URL
    trigger_path: str = WALL_TRANSPORT_TRIGGER_PATH
    ws_path: str = WALL_TRANSPORT_WS_PATH
    channel_prefix: str = WALL_TRANSPORT_CHANNEL_PREFIX
    local_prefix: str = WALL_TRANSPORT_LOCAL_PREFIX
    publish_timeout: float = WALL_TRANSPORT_PUBLISH_TIMEOUT

    @field_validator("relay_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return str(v).rstrip("/")

    @property
    def trigger_url(self) -> str:
        return f"{self.relay_url}{self.trigger_path}"

    @property
    def ws_url(self) -> str:
        """Websocket URL derived from the relay URL (http → ws, https → wss)."""
        if self.relay_url.startswith("https://"):
            base = "wss://" + self.relay_url[len("https://") :]
        elif self.relay_url.startswith("http://"):
            base = "ws://" + self.relay_url[len("http://") :]
        else:
            base = self.relay_url
        return f"{base}{self.ws_path}"


class WallTimerConfigModel(BaseModel):
    """Autonomous timer settings, all in milliseconds."""

    default_interval_ms: int = WALL_TIMER_DEFAULT_INTERVAL_MS
    drift_check_ms: int = WALL_TIMER_DRIFT_CHECK_MS
    transition_ms: int = WALL_TIMER_TRANSITION_MS

    @field_validator("default_interval_ms", "drift_check_ms")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timer periods must be positive")
        return v

    @field_validator("transition_ms")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("transition_ms cannot be negative")
        return v


class WallServerConfigModel(BaseModel):
    """Relay server bind settings."""

    host: str = WALL_SERVER_HOST
    port: int = WALL_SERVER_PORT


class WallLaunchConfig(BaseSettings):
    """multiwall launch configuration settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=_get_env_file_path(),
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        env_nested_delimiter="_",
        env_nested_max_split=1,
        env_prefix="wall_",
        extra="ignore",
        toml_file=_get_toml_file_path(),
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # INIT > ENV > DOTENV > TOML > DEFAULTS
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    base_dir: Path = WALL_BASE_DIR
    dev_mode: bool = WALL_DEV_MODE
    log_level: str = WALL_LOG_LEVEL
    data: WallDataConfigModel = WallDataConfigModel()
    transport: WallTransportConfigModel = WallTransportConfigModel()
    timer: WallTimerConfigModel = WallTimerConfigModel()
    server: WallServerConfigModel = WallServerConfigModel()

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        return str(v).upper()

    @model_validator(mode="after")
    def _validate_and_transfer_to_env(self) -> "WallLaunchConfig":
        """Mirror the resolved config into WALL_* env vars for child processes."""
        env = _transfer_config_to_env(self.model_dump(mode="json"))
        for k, v in env.items():
            os.environ[k] = v.replace("\\", "/")
        return self


_config: WallLaunchConfig | None = None


def get_config(*, reload: bool = False) -> WallLaunchConfig:
    """Return the process-wide config, building it on first use."""
    global _config
    if _config is None or reload:
        _config = WallLaunchConfig()
    return _config
