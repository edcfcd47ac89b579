from multiwall.config import WallLaunchConfig, get_config
from multiwall.constants import WALL_BASE_DIR, WALL_CONFIG_TOML_FILE, WALL_RELAY_EVENT

__version__ = "0.1.0"

__all__ = (
    "WALL_BASE_DIR",
    "WALL_CONFIG_TOML_FILE",
    "WALL_RELAY_EVENT",
    "WallLaunchConfig",
    "get_config",
)
