"""Tests for socket readiness validation."""

import asyncio
import os
from pathlib import Path

import pytest

from shellbridge.errors import SocketSecurityError, SocketTimeoutError
from shellbridge.transport import readiness
from shellbridge.transport.readiness import inspect_socket, wait_for_socket
from tests.conftest import bind_socket


class TestInspectSocket:
    def test_accepts_owner_only_socket(self, socket_dir: Path):
        path = socket_dir / "ok.sock"
        sock = bind_socket(path, 0o600)
        try:
            endpoint = inspect_socket(path)
        finally:
            sock.close()
        assert endpoint.path == path
        assert endpoint.mode == 0o600
        assert endpoint.uid == os.geteuid()

    def test_missing_path_is_file_not_found(self, socket_dir: Path):
        with pytest.raises(FileNotFoundError):
            inspect_socket(socket_dir / "missing.sock")

    def test_regular_file_is_security_violation(self, socket_dir: Path):
        path = socket_dir / "file.sock"
        path.write_text("")
        path.chmod(0o600)
        with pytest.raises(SocketSecurityError, match="not a Unix domain socket"):
            inspect_socket(path)

    def test_directory_is_security_violation(self, socket_dir: Path):
        path = socket_dir / "dir.sock"
        path.mkdir(mode=0o700)
        with pytest.raises(SocketSecurityError):
            inspect_socket(path)

    def test_group_readable_socket_is_rejected(self, socket_dir: Path):
        path = socket_dir / "loose.sock"
        sock = bind_socket(path, 0o644)
        try:
            with pytest.raises(SocketSecurityError, match="permissions must be 600"):
                inspect_socket(path)
        finally:
            sock.close()

    def test_foreign_owner_is_rejected(self, socket_dir: Path, monkeypatch):
        path = socket_dir / "other.sock"
        sock = bind_socket(path, 0o600)
        monkeypatch.setattr(readiness.os, "geteuid", lambda: os.stat(path).st_uid + 1)
        try:
            with pytest.raises(SocketSecurityError, match="owner"):
                inspect_socket(path)
        finally:
            sock.close()


class TestWaitForSocket:
    @pytest.mark.asyncio
    async def test_regular_file_fails_immediately_without_retry(
        self, socket_dir: Path, monkeypatch
    ):
        path = socket_dir / "file.sock"
        path.write_text("")
        path.chmod(0o600)

        calls = 0
        real_inspect = readiness.inspect_socket

        def counting(p):
            nonlocal calls
            calls += 1
            return real_inspect(p)

        monkeypatch.setattr(readiness, "inspect_socket", counting)

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(SocketSecurityError):
            await wait_for_socket(path, timeout=3.0, interval=0.2)

        assert calls == 1
        assert loop.time() - started < 0.1

    @pytest.mark.asyncio
    async def test_permissive_socket_fails_even_while_listening(self, socket_dir: Path):
        path = socket_dir / "loose.sock"
        server = await asyncio.start_unix_server(lambda r, w: w.close(), path=str(path))
        os.chmod(path, 0o644)
        try:
            # connect itself would work
            reader, writer = await asyncio.open_unix_connection(str(path))
            writer.close()
            with pytest.raises(SocketSecurityError):
                await wait_for_socket(path, timeout=1.0, interval=0.05)
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_succeeds_on_first_poll_after_socket_appears(self, socket_dir: Path):
        path = socket_dir / "late.sock"
        loop = asyncio.get_running_loop()
        started = loop.time()
        holder = []

        async def create_later() -> None:
            await asyncio.sleep(0.5)
            holder.append(bind_socket(path, 0o600))

        creator = asyncio.create_task(create_later())
        try:
            endpoint = await wait_for_socket(path, timeout=3.0, interval=0.2)
            elapsed = loop.time() - started
        finally:
            await creator
            for sock in holder:
                sock.close()

        assert endpoint.path == path
        # polls at 0.0, 0.2, 0.4 miss; 0.6 is the first after creation
        assert 0.5 <= elapsed < 0.8

    @pytest.mark.asyncio
    async def test_times_out_when_socket_never_appears(self, socket_dir: Path):
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(SocketTimeoutError):
            await wait_for_socket(socket_dir / "never.sock", timeout=0.5, interval=0.1)
        assert loop.time() - started >= 0.5
