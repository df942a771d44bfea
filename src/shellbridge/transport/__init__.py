"""Client-side socket transport and pre-connect validation."""

from shellbridge.transport.client import SocketTransport, connect_with_retry
from shellbridge.transport.readiness import (
    SocketEndpoint,
    inspect_socket,
    wait_for_socket,
)

__all__ = [
    "SocketEndpoint",
    "SocketTransport",
    "connect_with_retry",
    "inspect_socket",
    "wait_for_socket",
]
