"""Entry point for ``python -m shellbridge``."""

from shellbridge.cli.app import app

if __name__ == "__main__":
    app()
