"""Daemon discovery and lifecycle.

The proxy only needs one thing from the daemon lifecycle: a socket path. The
DaemonManager protocol is the narrow contract it consumes; LocalDaemonManager
is the implementation used by the CLI, one detached daemon process per
working directory tracked through a JSON descriptor under the run directory.
"""

import asyncio
import json
import logging
import os
import shutil
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from shellbridge.config.models import BridgeConfig, ConfigError
from shellbridge.config.paths import get_daemon_dir, get_daemon_log_path, workdir_key
from shellbridge.errors import DaemonDiscoveryError

logger = logging.getLogger(__name__)

DESCRIPTOR_FILE = "daemon.json"
SOCKET_FILE = "daemon.sock"
DAEMON_STARTUP_TIMEOUT = 3.0  # seconds
DAEMON_STOP_TIMEOUT = 3.0  # seconds


@dataclass(frozen=True)
class DaemonDescriptor:
    """What the lifecycle layer reports about a running daemon."""

    server_id: str
    pid: int
    cwd: Path
    socket_path: Path | None = None
    started_at: float = 0.0

    def to_json(self) -> str:
        return json.dumps(
            {
                "server_id": self.server_id,
                "pid": self.pid,
                "cwd": str(self.cwd),
                "socket_path": str(self.socket_path) if self.socket_path else None,
                "started_at": self.started_at,
            },
            indent=2,
        )

    @classmethod
    def from_json(cls, data: str) -> "DaemonDescriptor":
        raw = json.loads(data)
        return cls(
            server_id=raw["server_id"],
            pid=int(raw["pid"]),
            cwd=Path(raw["cwd"]),
            socket_path=Path(raw["socket_path"]) if raw.get("socket_path") else None,
            started_at=float(raw.get("started_at", 0.0)),
        )


class DaemonManager(Protocol):
    """Lifecycle operations the proxy relies on."""

    async def start(self, cwd: Path, allow_existing: bool = True) -> str: ...

    async def get(self, server_id: str) -> DaemonDescriptor | None: ...

    async def stop(self, server_id: str, force: bool = False) -> None: ...


async def resolve_daemon_socket(manager: DaemonManager, cwd: Path) -> Path:
    """Start or reuse a daemon for ``cwd`` and return its socket path.

    A freshly reported daemon may not have created its socket yet. If the
    first round yields no path, that instance is force-stopped and a clean
    start is tried exactly once more.

    Raises:
        DaemonDiscoveryError: If neither round produced a socket path.
    """
    server_id = await manager.start(cwd, allow_existing=True)
    info = await manager.get(server_id)
    if info is not None and info.socket_path is not None:
        return info.socket_path

    logger.warning(
        "Daemon socket not available, restarting daemon",
        extra={"server_id": server_id, "cwd": str(cwd)},
    )
    await manager.stop(server_id, force=True)

    server_id = await manager.start(cwd, allow_existing=False)
    info = await manager.get(server_id)
    if info is not None and info.socket_path is not None:
        return info.socket_path

    raise DaemonDiscoveryError(f"Daemon socket was not available for {cwd}")


def is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)  # Signal 0 checks existence without sending signal
        return True
    except OSError:
        return False


def send_signal(pid: int, sig: signal.Signals) -> bool:
    try:
        os.kill(pid, sig)
        return True
    except OSError:
        return False


def _get_shellbridge_command() -> list[str]:
    """Get the command that runs the shellbridge CLI."""
    path = shutil.which("shellbridge")
    if path:
        return [path]
    # Fall back to running as module
    return [sys.executable, "-m", "shellbridge"]


class LocalDaemonManager:
    """Runs one detached daemon process per working directory.

    The server id is derived from the working directory, so starting twice
    for the same directory reuses the running daemon when allowed.
    """

    def __init__(
        self,
        config: BridgeConfig,
        command: list[str] | None = None,
        startup_timeout: float = DAEMON_STARTUP_TIMEOUT,
    ):
        self._config = config
        self._command = command or _get_shellbridge_command()
        self._startup_timeout = startup_timeout

    def _descriptor_path(self, server_id: str) -> Path:
        return get_daemon_dir(server_id) / DESCRIPTOR_FILE

    def _read_descriptor(self, server_id: str) -> DaemonDescriptor | None:
        path = self._descriptor_path(server_id)
        if not path.exists():
            return None
        try:
            return DaemonDescriptor.from_json(path.read_text())
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Ignoring corrupt daemon descriptor", extra={"path": str(path)})
            return None

    def _remove_descriptor(self, server_id: str) -> None:
        self._descriptor_path(server_id).unlink(missing_ok=True)

    async def start(self, cwd: Path, allow_existing: bool = True) -> str:
        """Start a daemon for ``cwd`` and return its server id.

        Raises:
            ConfigError: If ``cwd`` is outside the allowed working directories.
            DaemonDiscoveryError: If the daemon process exits during startup.
        """
        cwd = Path(cwd).expanduser().resolve()
        if not self._config.is_workdir_allowed(cwd):
            raise ConfigError(f"Working directory not allowed: {cwd}")

        server_id = workdir_key(cwd)
        existing = self._read_descriptor(server_id)
        if existing is not None and is_process_alive(existing.pid):
            if allow_existing:
                logger.debug("Reusing running daemon", extra={"server_id": server_id})
                return server_id
            await self.stop(server_id, force=True)
        elif existing is not None:
            self._remove_descriptor(server_id)

        daemon_dir = get_daemon_dir(server_id)
        daemon_dir.mkdir(parents=True, exist_ok=True)
        socket_path = daemon_dir / SOCKET_FILE

        log_path = get_daemon_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = self._command + ["daemon", "--socket", str(socket_path)]
        with log_path.open("a") as log_file:  # noqa: ASYNC230
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                stdout=log_file,
                stderr=log_file,
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )

        descriptor = DaemonDescriptor(
            server_id=server_id,
            pid=proc.pid,
            cwd=cwd,
            socket_path=socket_path,
            started_at=time.time(),
        )
        self._descriptor_path(server_id).write_text(descriptor.to_json())
        logger.info(
            "Started daemon",
            extra={"server_id": server_id, "pid": proc.pid, "cwd": str(cwd)},
        )

        # Wait briefly for the child to bind its socket
        deadline = time.monotonic() + self._startup_timeout
        while time.monotonic() < deadline:
            if proc.returncode is not None:
                self._remove_descriptor(server_id)
                raise DaemonDiscoveryError(
                    f"Daemon exited during startup with code {proc.returncode}"
                )
            if socket_path.exists():
                break
            await asyncio.sleep(0.1)

        return server_id

    async def get(self, server_id: str) -> DaemonDescriptor | None:
        """Describe a daemon; socket_path is None until its socket exists."""
        descriptor = self._read_descriptor(server_id)
        if descriptor is None or not is_process_alive(descriptor.pid):
            return None
        if descriptor.socket_path is not None and not descriptor.socket_path.exists():
            return DaemonDescriptor(
                server_id=descriptor.server_id,
                pid=descriptor.pid,
                cwd=descriptor.cwd,
                socket_path=None,
                started_at=descriptor.started_at,
            )
        return descriptor

    async def stop(self, server_id: str, force: bool = False) -> None:
        """Stop a daemon with SIGTERM; escalate to SIGKILL when ``force``."""
        descriptor = self._read_descriptor(server_id)
        if descriptor is None:
            return

        if is_process_alive(descriptor.pid):
            send_signal(descriptor.pid, signal.SIGTERM)
            steps = int(DAEMON_STOP_TIMEOUT / 0.1)
            for _ in range(steps):
                await asyncio.sleep(0.1)
                if not is_process_alive(descriptor.pid):
                    break
            else:
                if force:
                    send_signal(descriptor.pid, signal.SIGKILL)
                    await asyncio.sleep(0.1)
                else:
                    logger.warning(
                        "Daemon did not exit after SIGTERM",
                        extra={"server_id": server_id, "pid": descriptor.pid},
                    )
                    return

        self._remove_descriptor(server_id)
        logger.info("Stopped daemon", extra={"server_id": server_id})
