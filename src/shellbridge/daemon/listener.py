"""Unix domain socket listener for the daemon.

Every accepted connection becomes a Session with its own framing buffer and
its own handler instance. Sessions live in an arena keyed by connection id
and are removed when the socket closes, the listener stops, or the idle
watchdog fires.
"""

import asyncio
import itertools
import logging
import os
import socket
import stat
from collections.abc import Callable
from pathlib import Path

from shellbridge.config.models import ListenerConfig
from shellbridge.errors import (
    InvalidMessageError,
    ParseError,
    SocketConflictError,
)
from shellbridge.rpc.dispatcher import SessionHandler
from shellbridge.rpc.framing import ReadBuffer
from shellbridge.rpc.protocol import ErrorCode, RPCMessage, RPCResponse
from shellbridge.transport.client import READ_CHUNK_SIZE
from shellbridge.transport.readiness import REQUIRED_SOCKET_MODE

logger = logging.getLogger(__name__)

SessionFactory = Callable[["Session"], SessionHandler]


class Session:
    """One accepted connection and its isolated handler state."""

    def __init__(
        self,
        session_id: int,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        config: ListenerConfig,
    ):
        self.session_id = session_id
        self._reader = reader
        self._writer = writer
        self._config = config
        self._buffer = ReadBuffer(config.max_line_bytes)
        self._write_lock = asyncio.Lock()
        self._last_activity = asyncio.get_running_loop().time()
        self._closed = False
        self.handler: SessionHandler | None = None

    def touch(self) -> None:
        self._last_activity = asyncio.get_running_loop().time()

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, message: RPCMessage) -> None:
        """Write one message to this session's client."""
        if self._closed or self._writer.is_closing():
            logger.debug("Session closed, dropping message", extra={"session": self.session_id})
            return
        async with self._write_lock:
            self._writer.write(message.to_bytes())
            await self._writer.drain()
        self.touch()

    async def serve(self) -> None:
        """Read, frame and handle messages strictly in arrival order."""
        assert self.handler is not None
        while not self._closed:
            chunk = await self._reader.read(READ_CHUNK_SIZE)
            if not chunk:
                return
            self.touch()
            self._buffer.append(chunk)
            while True:
                try:
                    message = self._buffer.read_message()
                except ParseError as e:
                    logger.error(
                        "Failed to parse session message",
                        extra={"session": self.session_id, "error": str(e)},
                    )
                    code = (
                        ErrorCode.INVALID_REQUEST
                        if isinstance(e, InvalidMessageError)
                        else ErrorCode.PARSE_ERROR
                    )
                    await self.send(RPCResponse.error_response(None, code, str(e)))
                    continue
                if message is None:
                    break
                response = await self.handler.handle(message)
                if response is not None:
                    await self.send(response)

    async def watch_idle(self) -> None:
        """Abort the connection once no traffic has been seen for idle_timeout."""
        loop = asyncio.get_running_loop()
        timeout = self._config.idle_timeout
        while not self._closed:
            remaining = self._last_activity + timeout - loop.time()
            if remaining <= 0:
                logger.info(
                    "Closing idle session",
                    extra={"session": self.session_id, "idle_timeout": timeout},
                )
                self.abort()
                return
            await asyncio.sleep(remaining)

    def abort(self) -> None:
        """Destroy the connection without waiting for buffered writes."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._writer.transport.abort()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._buffer.clear()
            self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass
        if self.handler is not None:
            await self.handler.close()


class DaemonSocketListener:
    """Binds the daemon socket and gives each connection an isolated session."""

    def __init__(
        self,
        socket_path: Path,
        session_factory: SessionFactory,
        config: ListenerConfig | None = None,
    ):
        """Initialize the listener.

        Args:
            socket_path: Path to the Unix domain socket.
            session_factory: Builds a fresh handler for each accepted session.
            config: Idle timeout and framing limits.
        """
        self._socket_path = Path(socket_path)
        self._session_factory = session_factory
        self._config = config or ListenerConfig()
        self._server: asyncio.Server | None = None
        self._sessions: dict[int, Session] = {}
        self._tasks: set[asyncio.Task] = set()
        self._ids = itertools.count(1)
        self._running = False

    def _remove_stale_socket(self) -> None:
        try:
            st = os.lstat(self._socket_path)
        except FileNotFoundError:
            return
        if not stat.S_ISSOCK(st.st_mode):
            raise SocketConflictError(
                f"Refusing to replace non-socket file at {self._socket_path}"
            )
        logger.info("Removing stale socket", extra={"socket": str(self._socket_path)})
        self._socket_path.unlink(missing_ok=True)

    async def start(self) -> None:
        """Start listening.

        The socket is bound under a hidden sibling name, restricted to owner
        only, and only then linked onto the public path, so it never appears
        there with default permissions. A file that appears at the path in
        the meantime is never replaced.

        Raises:
            SocketConflictError: If a non-socket file occupies the path.
        """
        self._socket_path.parent.mkdir(parents=True, exist_ok=True)
        self._remove_stale_socket()

        staging_path = self._socket_path.with_name(
            f".{self._socket_path.name}.{os.getpid()}"
        )
        staging_path.unlink(missing_ok=True)

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(str(staging_path))
            os.chmod(staging_path, REQUIRED_SOCKET_MODE)
            self._server = await asyncio.start_unix_server(
                self._handle_connection, sock=sock
            )
            # link() fails instead of replacing a file created since the check
            try:
                os.link(staging_path, self._socket_path)
            except FileExistsError as e:
                raise SocketConflictError(
                    f"Refusing to replace file created at {self._socket_path}"
                ) from e
            staging_path.unlink()
        except BaseException:
            sock.close()
            staging_path.unlink(missing_ok=True)
            if self._server is not None:
                self._server.close()
                self._server = None
            raise

        self._running = True
        logger.info("Daemon socket ready", extra={"socket": str(self._socket_path)})

    async def stop(self) -> None:
        """Stop accepting, close live sessions and remove the socket file."""
        self._running = False

        if self._server:
            self._server.close()

        for session in list(self._sessions.values()):
            session.abort()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._server:
            await self._server.wait_closed()
            self._server = None

        try:
            self._socket_path.unlink()
        except FileNotFoundError:
            pass

        logger.info("Daemon socket closed", extra={"socket": str(self._socket_path)})

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Run one session from accept to close."""
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)

        session = Session(next(self._ids), reader, writer, self._config)
        self._sessions[session.session_id] = session
        logger.debug("Session opened", extra={"session": session.session_id})

        watchdog: asyncio.Task | None = None
        try:
            session.handler = self._session_factory(session)
            watchdog = asyncio.create_task(session.watch_idle())
            await session.serve()
        except (ConnectionError, OSError) as e:
            logger.debug(
                "Session connection error",
                extra={"session": session.session_id, "error": str(e)},
            )
        except Exception:
            logger.exception("Error handling session", extra={"session": session.session_id})
        finally:
            if watchdog is not None:
                watchdog.cancel()
            self._sessions.pop(session.session_id, None)
            await session.close()
            if task is not None:
                self._tasks.discard(task)
            logger.debug("Session closed", extra={"session": session.session_id})

    @property
    def socket_path(self) -> Path:
        """Get the socket path."""
        return self._socket_path

    @property
    def is_running(self) -> bool:
        """Check if the listener is running."""
        return self._running

    @property
    def sessions(self) -> dict[int, Session]:
        """Live sessions keyed by connection id."""
        return dict(self._sessions)
