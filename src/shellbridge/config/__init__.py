"""Configuration module."""

from shellbridge.config.loader import load_config
from shellbridge.config.models import (
    BridgeConfig,
    ConfigError,
    ListenerConfig,
    ProxyConfig,
)
from shellbridge.config.paths import (
    get_config_path,
    get_daemon_socket_path,
    get_shellbridge_home,
)

__all__ = [
    "BridgeConfig",
    "ConfigError",
    "ListenerConfig",
    "ProxyConfig",
    "get_config_path",
    "get_daemon_socket_path",
    "get_shellbridge_home",
    "load_config",
]
