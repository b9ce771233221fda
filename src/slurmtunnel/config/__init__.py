from .tunnel_config import (
    DEFAULT_CONFIG_PATH,
    TunnelConfig,
    WatcherConfig,
    default_config_path,
    load_config,
    save_config,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "TunnelConfig",
    "WatcherConfig",
    "default_config_path",
    "load_config",
    "save_config",
]
