"""Shared test fixtures and factories."""

import asyncio
import os
import shutil
import socket
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from shellbridge.config.paths import ENV_VAR, get_shellbridge_home

# =============================================================================
# Filesystem Fixtures
# =============================================================================


@pytest.fixture
def socket_dir() -> Iterator[Path]:
    """Short-lived directory with a short path.

    Unix socket paths are limited to ~104 bytes, which pytest's tmp_path can
    exceed for long test names.
    """
    path = Path(tempfile.mkdtemp(prefix="sb-", dir="/tmp"))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def shellbridge_home(tmp_path: Path, monkeypatch) -> Iterator[Path]:
    """Point SHELLBRIDGE_HOME at a temporary directory."""
    home = tmp_path / "home"
    monkeypatch.setenv(ENV_VAR, str(home))
    get_shellbridge_home.cache_clear()
    yield home
    get_shellbridge_home.cache_clear()


def bind_socket(path: Path, mode: int = 0o600) -> socket.socket:
    """Bind (but do not listen on) a Unix socket at ``path`` with ``mode``."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.bind(str(path))
    os.chmod(path, mode)
    return sock


# =============================================================================
# Stream Fixtures
# =============================================================================


class RecordingOutput:
    """Binary sink standing in for stdout; records every flushed write."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.flushes = 0
        self._changed = asyncio.Event()

    def write(self, chunk: bytes) -> int:
        self.data.extend(chunk)
        return len(chunk)

    def flush(self) -> None:
        self.flushes += 1
        self._changed.set()

    async def wait_for(self, predicate, timeout: float = 2.0) -> None:
        async def _wait() -> None:
            while not predicate(bytes(self.data)):
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout)


@pytest.fixture
def output() -> RecordingOutput:
    return RecordingOutput()


async def echo_handler(params: Any) -> Any:
    return params


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})
