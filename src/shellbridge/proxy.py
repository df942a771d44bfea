"""Stdio-to-socket proxy for a running daemon.

The proxy owns the client-facing half of the bridge: it reads framed messages
from stdin, forwards them to the daemon socket and writes every daemon message
back to stdout. stdout carries protocol traffic only; diagnostics go through
logging.
"""

import asyncio
import errno
import logging
import sys
from pathlib import Path
from typing import BinaryIO

from shellbridge.config.models import ProxyConfig
from shellbridge.errors import (
    BridgeError,
    ParseError,
    SocketSecurityError,
    SocketTimeoutError,
    TransportError,
)
from shellbridge.rpc.framing import ReadBuffer
from shellbridge.rpc.protocol import RPCMessage
from shellbridge.transport.client import (
    READ_CHUNK_SIZE,
    SocketTransport,
    connect_with_retry,
)
from shellbridge.transport.readiness import wait_for_socket

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1


def describe_transport_error(error: BaseException) -> str:
    """Map a connect or transport failure to a human-readable diagnostic."""
    if isinstance(error, SocketSecurityError):
        return f"Daemon socket failed security checks: {error.reason}."
    if isinstance(error, SocketTimeoutError):
        return "Timed out waiting for the daemon socket. Start the shellbridge daemon."
    if isinstance(error, FileNotFoundError):
        return "Daemon socket not found. Start the shellbridge daemon."
    if isinstance(error, PermissionError):
        return "Permission denied connecting to daemon socket. Check file permissions and ownership."
    if isinstance(error, ConnectionRefusedError):
        return "Daemon socket refused connection. The daemon may be down."

    code = getattr(error, "errno", None)
    if code == errno.ENOENT:
        return "Daemon socket not found. Start the shellbridge daemon."
    if code in (errno.EACCES, errno.EPERM):
        return "Permission denied connecting to daemon socket. Check file permissions and ownership."
    if code == errno.ECONNREFUSED:
        return "Daemon socket refused connection. The daemon may be down."
    return "Daemon transport error."


async def open_stdin_reader() -> asyncio.StreamReader:
    """Return a non-blocking StreamReader over the process's binary stdin.

    Raises:
        TransportError: If stdin cannot be read asynchronously (for example a
            regular file redirected onto stdin).
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    try:
        await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)
    except (ValueError, OSError) as e:
        raise TransportError(f"Cannot read stdin as a stream: {e}") from e
    return reader


class DaemonProxy:
    """Relays one client session between a stdio pair and the daemon socket.

    Lifecycle: start() validates and connects, run_forever() relays until
    either side closes or shutdown() is requested.
    """

    def __init__(
        self,
        socket_path: Path,
        input_stream: asyncio.StreamReader,
        output_stream: BinaryIO,
        config: ProxyConfig | None = None,
    ):
        self._socket_path = Path(socket_path)
        self._input = input_stream
        self._output = output_stream
        self._config = config or ProxyConfig()
        self._buffer = ReadBuffer(self._config.max_line_bytes)
        self._transport: SocketTransport | None = None
        self._shutdown = asyncio.Event()

    async def start(self) -> None:
        """Validate the socket and connect.

        Errors from validation and connect propagate unchanged.
        """
        try:
            await wait_for_socket(
                self._socket_path,
                timeout=self._config.socket_ready_timeout,
                interval=self._config.socket_ready_interval,
            )
        except (BridgeError, OSError) as e:
            logger.error(
                describe_transport_error(e),
                extra={"error": str(e), "socket": str(self._socket_path)},
            )
            raise

        try:
            self._transport = await connect_with_retry(
                self._socket_path,
                timeout=self._config.connect_timeout,
                interval=self._config.connect_interval,
                max_line_bytes=self._config.max_line_bytes,
            )
        except OSError as e:
            logger.error(
                describe_transport_error(e),
                extra={"error": str(e), "socket": str(self._socket_path)},
            )
            raise

        logger.info("Connected to daemon", extra={"socket": str(self._socket_path)})

    async def run_forever(self) -> None:
        """Relay messages in both directions until one side closes."""
        if self._transport is None:
            raise RuntimeError("DaemonProxy.start() must be called first")

        inbound = asyncio.create_task(self._pump_input(), name="proxy-inbound")
        outbound = asyncio.create_task(self._pump_output(), name="proxy-outbound")
        stopper = asyncio.create_task(self._shutdown.wait(), name="proxy-shutdown")

        try:
            done, _ = await asyncio.wait(
                {inbound, outbound, stopper}, return_when=asyncio.FIRST_COMPLETED
            )

            if inbound in done and outbound not in done and not self._shutdown.is_set():
                # stdin closed: stop sending, give in-flight replies a moment
                await self._transport.close_write()
                _, pending = await asyncio.wait(
                    {outbound, stopper}, timeout=self._config.shutdown_grace
                )
                if outbound in pending:
                    logger.debug("Grace period elapsed with replies outstanding")
        finally:
            for task in (inbound, outbound, stopper):
                task.cancel()
            await asyncio.gather(inbound, outbound, stopper, return_exceptions=True)
            for task in (inbound, outbound):
                if not task.cancelled() and task.exception() is not None:
                    logger.error(
                        describe_transport_error(task.exception()),
                        extra={"error": str(task.exception()), "task": task.get_name()},
                    )
            await self.close()

    async def run(self) -> int:
        """Start and relay; return the process exit code."""
        try:
            await self.start()
        except (BridgeError, OSError):
            await self.close()
            return EXIT_STARTUP_FAILURE
        await self.run_forever()
        return EXIT_OK

    def shutdown(self) -> None:
        """Request termination. Safe to call from a signal handler."""
        self._shutdown.set()

    async def close(self) -> None:
        self._buffer.clear()
        if self._transport is not None:
            await self._transport.close()

    async def _pump_input(self) -> None:
        while True:
            chunk = await self._input.read(READ_CHUNK_SIZE)
            if not chunk:
                logger.info("Input closed, closing daemon transport")
                self._buffer.clear()
                return
            self._buffer.append(chunk)
            while True:
                try:
                    message = self._buffer.read_message()
                except ParseError as e:
                    logger.error(
                        "Failed to parse proxy message", extra={"error": str(e)}
                    )
                    continue
                if message is None:
                    break
                await self._forward(message)

    async def _forward(self, message: RPCMessage) -> None:
        assert self._transport is not None
        try:
            await self._transport.send(message)
        except TransportError as e:
            logger.error("Failed to send proxy message", extra={"error": str(e)})

    async def _pump_output(self) -> None:
        assert self._transport is not None
        async for message in self._transport.messages():
            try:
                self._output.write(message.to_bytes())
                self._output.flush()
            except (OSError, ValueError) as e:
                logger.error("Failed to write daemon message", extra={"error": str(e)})
        logger.info("Daemon transport closed")
