"""Client side of the newline-delimited JSON-RPC socket transport."""

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path

from shellbridge.errors import ParseError, TransportError
from shellbridge.rpc.framing import DEFAULT_MAX_LINE_BYTES, ReadBuffer
from shellbridge.rpc.protocol import RPCMessage

logger = logging.getLogger(__name__)

TRANSPORT_READY_TIMEOUT = 2.0  # seconds
TRANSPORT_READY_INTERVAL = 0.2  # seconds
READ_CHUNK_SIZE = 64 * 1024


class SocketTransport:
    """A connected Unix socket carrying one JSON-RPC message per line."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        max_line_bytes: int | None = DEFAULT_MAX_LINE_BYTES,
    ):
        self._reader = reader
        self._writer = writer
        self._buffer = ReadBuffer(max_line_bytes)
        self._write_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def connect(
        cls, socket_path: Path, max_line_bytes: int | None = DEFAULT_MAX_LINE_BYTES
    ) -> "SocketTransport":
        reader, writer = await asyncio.open_unix_connection(str(socket_path))
        return cls(reader, writer, max_line_bytes)

    async def send(self, message: RPCMessage) -> None:
        """Write one message.

        Raises:
            TransportError: If the socket is closed or the write fails.
        """
        if self._closed or self._writer.is_closing():
            raise TransportError("Transport is closed")
        try:
            async with self._write_lock:
                self._writer.write(message.to_bytes())
                await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Failed to send message: {e}") from e

    async def messages(self) -> AsyncIterator[RPCMessage]:
        """Yield messages from the backend until the socket closes.

        Malformed records are logged and skipped.
        """
        try:
            while True:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    return
                self._buffer.append(chunk)
                while True:
                    try:
                        message = self._buffer.read_message()
                    except ParseError as e:
                        logger.error(
                            "Dropping malformed message from daemon",
                            extra={"error": str(e)},
                        )
                        continue
                    if message is None:
                        break
                    yield message
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Failed to read from daemon: {e}") from e
        finally:
            self._buffer.clear()

    async def close_write(self) -> None:
        """Half-close: signal end of input while still reading replies."""
        if self._closed or self._writer.is_closing():
            return
        if self._writer.can_write_eof():
            try:
                self._writer.write_eof()
            except OSError as e:
                logger.debug("write_eof failed", extra={"error": str(e)})

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    @property
    def is_closed(self) -> bool:
        return self._closed


async def connect_with_retry(
    socket_path: Path,
    timeout: float = TRANSPORT_READY_TIMEOUT,
    interval: float = TRANSPORT_READY_INTERVAL,
    max_line_bytes: int | None = DEFAULT_MAX_LINE_BYTES,
) -> SocketTransport:
    """Connect to the daemon, retrying while it refuses connections.

    Only ConnectionRefusedError is retried; every other error propagates on
    the attempt that raised it.

    Raises:
        ConnectionRefusedError: The last refusal, once ``timeout`` has elapsed.
        OSError: Any other connect failure.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempt = 0

    while True:
        attempt += 1
        try:
            transport = await SocketTransport.connect(socket_path, max_line_bytes)
        except ConnectionRefusedError:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "Daemon still refusing connections",
                    extra={"socket": str(socket_path), "attempts": attempt},
                )
                raise
            logger.debug(
                "Connection refused, retrying",
                extra={"socket": str(socket_path), "attempt": attempt},
            )
            await asyncio.sleep(min(interval, remaining))
            continue

        if attempt > 1:
            logger.info(
                "Connected to daemon after retry",
                extra={"socket": str(socket_path), "attempts": attempt},
            )
        return transport
