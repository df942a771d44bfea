"""Command-line interface."""

from shellbridge.cli.app import app

__all__ = ["app"]
