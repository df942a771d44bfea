"""shellbridge: stdio to Unix socket JSON-RPC bridge."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("shellbridge")
except PackageNotFoundError:
    __version__ = "unknown"
