"""Tests for the socket transport and bounded-retry connect."""

import asyncio
from pathlib import Path

import pytest

from shellbridge.errors import TransportError
from shellbridge.rpc.protocol import RPCRequest, RPCResponse
from shellbridge.transport import client
from shellbridge.transport.client import SocketTransport, connect_with_retry


class FakeTransport:
    closed = False


class TestConnectWithRetry:
    @pytest.mark.asyncio
    async def test_refused_for_1800ms_then_succeeds(self, monkeypatch):
        loop = asyncio.get_running_loop()
        started = loop.time()
        attempts = 0
        fake = FakeTransport()

        async def flaky_connect(socket_path, max_line_bytes=None):
            nonlocal attempts
            attempts += 1
            if loop.time() - started < 1.8:
                raise ConnectionRefusedError(111, "Connection refused")
            return fake

        monkeypatch.setattr(SocketTransport, "connect", staticmethod(flaky_connect))

        transport = await connect_with_retry(Path("/nowhere.sock"), timeout=2.0, interval=0.2)

        assert transport is fake
        assert attempts >= 9

    @pytest.mark.asyncio
    async def test_gives_up_with_last_refusal_after_deadline(self, monkeypatch):
        async def refuse(socket_path, max_line_bytes=None):
            raise ConnectionRefusedError(111, "Connection refused")

        monkeypatch.setattr(SocketTransport, "connect", staticmethod(refuse))

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(ConnectionRefusedError):
            await connect_with_retry(Path("/nowhere.sock"), timeout=0.4, interval=0.1)
        assert loop.time() - started >= 0.4

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, monkeypatch):
        attempts = 0

        async def denied(socket_path, max_line_bytes=None):
            nonlocal attempts
            attempts += 1
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(SocketTransport, "connect", staticmethod(denied))

        with pytest.raises(PermissionError):
            await connect_with_retry(Path("/nowhere.sock"), timeout=2.0, interval=0.2)
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_stale_socket_file_refuses(self, socket_dir: Path):
        import socket

        path = socket_dir / "stale.sock"
        stale = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        stale.bind(str(path))
        stale.close()

        with pytest.raises(ConnectionRefusedError):
            await connect_with_retry(path, timeout=0.3, interval=0.1)


class TestSocketTransport:
    @pytest.mark.asyncio
    async def test_send_and_receive_lines(self, socket_dir: Path):
        path = socket_dir / "echo.sock"
        received: list[bytes] = []

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
            line = await reader.readline()
            received.append(line)
            writer.write(b'{"jsonrpc":"2.0","id":1,"result":{"ok":true}}\n')
            writer.write(b"junk\n")
            writer.write(b'{"jsonrpc":"2.0","method":"notifications/progress"}\n')
            await writer.drain()
            writer.close()

        server = await asyncio.start_unix_server(handle, path=str(path))
        try:
            transport = await SocketTransport.connect(path)
            await transport.send(RPCRequest(method="ping", id=1))
            messages = [m async for m in transport.messages()]
            await transport.close()
        finally:
            server.close()
            await server.wait_closed()

        assert received == [b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n']
        assert messages[0] == RPCResponse.success(1, {"ok": True})
        assert len(messages) == 2
        assert isinstance(messages[1], RPCRequest)
        assert messages[1].is_notification

    @pytest.mark.asyncio
    async def test_send_after_close_raises_transport_error(self, socket_dir: Path):
        path = socket_dir / "closed.sock"
        server = await asyncio.start_unix_server(lambda r, w: w.close(), path=str(path))
        try:
            transport = await SocketTransport.connect(path)
            await transport.close()
            with pytest.raises(TransportError):
                await transport.send(RPCRequest(method="ping", id=1))
            assert transport.is_closed
        finally:
            server.close()
            await server.wait_closed()


def test_default_retry_window():
    assert client.TRANSPORT_READY_TIMEOUT == 2.0
    assert client.TRANSPORT_READY_INTERVAL == 0.2
