"""Main CLI application."""

from pathlib import Path
from typing import Annotated

import typer

from shellbridge.cli.commands import daemon, proxy

app = typer.Typer(
    name="shellbridge",
    help="Bridge a stdio JSON-RPC client to a Unix socket daemon.",
    no_args_is_help=True,
)


def load_cli_config(path: Path | None):
    """Load configuration, exiting with status 1 on any error."""
    from shellbridge.cli.console import error
    from shellbridge.config import ConfigError, load_config

    try:
        return load_config(path)
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1) from None


def _version_callback(value: bool) -> None:
    if value:
        from shellbridge import __version__

        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """shellbridge: stdio to Unix socket JSON-RPC bridge.

    stdout carries protocol traffic only; logs go to stderr.
    """


proxy.register(app)
daemon.register(app)
