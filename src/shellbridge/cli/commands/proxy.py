"""Proxy command: bridge stdio to the daemon socket."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the proxy command."""

    @app.command()
    def proxy(
        socket: Annotated[
            Path | None,
            typer.Option(
                "--socket",
                "-s",
                help="Daemon socket path (default: start or reuse a daemon for the workdir)",
            ),
        ] = None,
        workdir: Annotated[
            Path | None,
            typer.Option(
                "--workdir",
                "-w",
                help="Working directory the daemon is started for",
            ),
        ] = None,
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        log_file: Annotated[
            bool,
            typer.Option("--log-file/--no-log-file", help="Also write JSONL log files"),
        ] = False,
    ) -> None:
        """Relay JSON-RPC between stdin/stdout and the daemon socket."""
        from shellbridge.cli.app import load_cli_config
        from shellbridge.logging import configure_logging

        bridge_config = load_cli_config(config)
        configure_logging(level=bridge_config.log_level, log_to_file=log_file)

        code = asyncio.run(_run_proxy(bridge_config, socket, workdir))
        raise typer.Exit(code)


async def _run_proxy(config, socket_path: Path | None, workdir: Path | None) -> int:
    """Resolve the socket, then relay until either side closes."""
    from shellbridge.config.models import ConfigError
    from shellbridge.daemon.manager import LocalDaemonManager, resolve_daemon_socket
    from shellbridge.errors import BridgeError
    from shellbridge.lifecycle import bind_signals
    from shellbridge.proxy import EXIT_STARTUP_FAILURE, DaemonProxy, open_stdin_reader

    socket_path = socket_path or config.socket_path
    if socket_path is None:
        cwd = config.resolve_workdir(workdir)
        try:
            socket_path = await resolve_daemon_socket(LocalDaemonManager(config), cwd)
        except (BridgeError, ConfigError, OSError) as e:
            logger.error("Daemon socket discovery failed", extra={"error": str(e)})
            return EXIT_STARTUP_FAILURE

    try:
        reader = await open_stdin_reader()
    except BridgeError as e:
        logger.error("Cannot relay stdin", extra={"error": str(e)})
        return EXIT_STARTUP_FAILURE

    daemon_proxy = DaemonProxy(socket_path, reader, sys.stdout.buffer, config.proxy)
    unbind = bind_signals(daemon_proxy.shutdown)
    try:
        return await daemon_proxy.run()
    finally:
        unbind()
