"""Pre-connect safety and liveness checks for a daemon socket."""

import asyncio
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path

from shellbridge.errors import SocketSecurityError, SocketTimeoutError

logger = logging.getLogger(__name__)

SOCKET_READY_TIMEOUT = 3.0  # seconds
SOCKET_READY_INTERVAL = 0.2  # seconds
REQUIRED_SOCKET_MODE = 0o600


@dataclass(frozen=True)
class SocketEndpoint:
    """A socket path that passed validation."""

    path: Path
    mode: int
    uid: int


def inspect_socket(path: Path) -> SocketEndpoint:
    """Validate a socket path once.

    Raises:
        FileNotFoundError: If nothing exists at the path yet.
        SocketSecurityError: If the path is not a socket, its permissions are
            not exactly 0600, or it is owned by another user.
    """
    st = os.stat(path)

    if not stat.S_ISSOCK(st.st_mode):
        raise SocketSecurityError(str(path), "Socket path is not a Unix domain socket")

    mode = stat.S_IMODE(st.st_mode)
    if mode != REQUIRED_SOCKET_MODE:
        raise SocketSecurityError(
            str(path), f"Socket permissions must be 600, found {mode:o}"
        )

    uid = os.geteuid()
    if st.st_uid != uid:
        raise SocketSecurityError(str(path), "Socket owner does not match current user")

    return SocketEndpoint(path=Path(path), mode=mode, uid=st.st_uid)


async def wait_for_socket(
    path: Path,
    timeout: float = SOCKET_READY_TIMEOUT,
    interval: float = SOCKET_READY_INTERVAL,
) -> SocketEndpoint:
    """Poll until the socket at ``path`` exists and is safe to connect to.

    A missing path is retried until the deadline. Any security failure is
    raised on the attempt that observes it.

    Raises:
        SocketSecurityError: On the first unsafe observation.
        SocketTimeoutError: If the socket never appeared within ``timeout``.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0

    while True:
        attempts += 1
        try:
            endpoint = inspect_socket(path)
            logger.debug(
                "Socket ready", extra={"socket": str(path), "attempts": attempts}
            )
            return endpoint
        except FileNotFoundError:
            pass

        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.sleep(min(interval, remaining))

    raise SocketTimeoutError(
        f"Timed out waiting for daemon socket after {timeout:.1f}s: {path}"
    )
