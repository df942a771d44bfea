"""Centralized path management for shellbridge.

All runtime state (sockets, PID files, logs) lives under a single base
directory, overridable with the SHELLBRIDGE_HOME environment variable.

Default location: ~/.shellbridge
"""

import hashlib
import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "SHELLBRIDGE_HOME"


@lru_cache(maxsize=1)
def get_shellbridge_home() -> Path:
    """Get the base directory for all shellbridge state.

    Resolution order:
    1. SHELLBRIDGE_HOME environment variable (if set)
    2. ~/.shellbridge
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".shellbridge"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_shellbridge_home() / "config.toml"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_shellbridge_home() / "logs"


def get_run_path() -> Path:
    """Get the runtime directory path (PID files, sockets, descriptors)."""
    return get_shellbridge_home() / "run"


def get_daemon_socket_path() -> Path:
    """Get the default daemon Unix socket path."""
    return get_run_path() / "daemon.sock"


def get_daemon_log_path() -> Path:
    """Get the log file that detached daemons write to."""
    return get_logs_path() / "daemon.log"


def workdir_key(cwd: Path) -> str:
    """Stable short identifier for a working directory."""
    return hashlib.sha256(str(Path(cwd).resolve()).encode()).hexdigest()[:12]


def get_daemon_dir(server_id: str) -> Path:
    """Get the state directory of one managed daemon.

    Structure:
        ~/.shellbridge/run/daemons/<server_id>/
        ├── daemon.json   # DaemonDescriptor
        └── daemon.sock
    """
    return get_run_path() / "daemons" / server_id
