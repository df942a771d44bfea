"""Daemon command: serve sessions on a Unix socket."""

import asyncio
import importlib
import logging
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def load_session_factory(target: str, config):
    """Resolve a ``module:attribute`` handler target into a session factory.

    The attribute must be a callable taking the BridgeConfig and returning a
    session factory (a callable from Session to handler).

    Raises:
        ValueError: If the target is malformed or does not resolve.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Handler must look like 'package.module:factory', got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import handler module {module_name!r}: {e}") from e
    builder = getattr(module, attr, None)
    if builder is None or not callable(builder):
        raise ValueError(f"Handler {target!r} is not callable")
    return builder(config)


def register(app: typer.Typer) -> None:
    """Register the daemon command."""

    @app.command()
    def daemon(
        socket: Annotated[
            Path | None,
            typer.Option(
                "--socket",
                "-s",
                help="Socket path to listen on (default: ~/.shellbridge/run/daemon.sock)",
            ),
        ] = None,
        handler: Annotated[
            str | None,
            typer.Option(
                "--handler",
                help="Session handler factory as 'package.module:factory'",
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
        """Listen on the daemon socket and serve one session per connection."""
        from shellbridge.cli.app import load_cli_config
        from shellbridge.cli.console import error
        from shellbridge.config.paths import get_daemon_socket_path
        from shellbridge.logging import configure_logging
        from shellbridge.rpc.dispatcher import dispatcher_factory

        bridge_config = load_cli_config(config)
        configure_logging(level=bridge_config.log_level, use_rich=True, log_to_file=log_file)

        if handler:
            try:
                factory = load_session_factory(handler, bridge_config)
            except ValueError as e:
                error(str(e))
                raise typer.Exit(1) from None
        else:
            factory = dispatcher_factory(disabled_methods=bridge_config.disabled_methods)

        socket_path = socket or bridge_config.socket_path or get_daemon_socket_path()
        code = asyncio.run(_run_daemon(socket_path, factory, bridge_config))
        raise typer.Exit(code)


async def _run_daemon(socket_path: Path, factory, config) -> int:
    """Serve until a termination signal arrives."""
    from shellbridge.daemon.listener import DaemonSocketListener
    from shellbridge.errors import BridgeError
    from shellbridge.lifecycle import Lifecycle, bind_signals

    listener = DaemonSocketListener(socket_path, factory, config.listener)
    lifecycle = Lifecycle(listener)
    try:
        await lifecycle.start()
    except (BridgeError, OSError) as e:
        logger.error(
            "Daemon startup failed",
            extra={"error": str(e), "socket": str(socket_path)},
        )
        return 1

    unbind = bind_signals(lifecycle.request_shutdown)
    try:
        await lifecycle.wait()
    finally:
        unbind()
        await lifecycle.shutdown()
    return 0
