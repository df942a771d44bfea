"""CLI command modules."""

from shellbridge.cli.commands import daemon, proxy

__all__ = ["daemon", "proxy"]
