"""Daemon side of the bridge.

Example:
    from shellbridge.daemon import DaemonSocketListener
    from shellbridge.rpc import dispatcher_factory

    listener = DaemonSocketListener(socket_path, dispatcher_factory())
    await listener.start()
"""

from shellbridge.daemon.listener import DaemonSocketListener, Session
from shellbridge.daemon.manager import (
    DaemonDescriptor,
    DaemonManager,
    LocalDaemonManager,
    resolve_daemon_socket,
)

__all__ = [
    "DaemonDescriptor",
    "DaemonManager",
    "DaemonSocketListener",
    "LocalDaemonManager",
    "Session",
    "resolve_daemon_socket",
]
