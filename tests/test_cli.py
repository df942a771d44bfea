"""Tests for CLI commands."""

from pathlib import Path

import pytest

from shellbridge.cli.app import app
from shellbridge.cli.commands.daemon import load_session_factory
from shellbridge.cli.commands.proxy import _run_proxy
from shellbridge.config.models import BridgeConfig
from shellbridge.proxy import EXIT_STARTUP_FAILURE
from shellbridge.rpc.dispatcher import RPCDispatcher, dispatcher_factory
from tests.conftest import echo_handler


def build_echo_factory(config: BridgeConfig):
    return dispatcher_factory({"echo": echo_handler}, config.disabled_methods)


NOT_CALLABLE = 42


class TestVersion:
    def test_version_flag(self, cli_runner):
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.strip()

    def test_no_args_shows_help(self, cli_runner):
        result = cli_runner.invoke(app, [])
        assert "proxy" in result.output
        assert "daemon" in result.output


class TestProxyCommand:
    """Tests for 'shellbridge proxy' command."""

    def test_missing_config_file_exits_1(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["proxy", "--config", str(tmp_path / "missing.toml")]
        )
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_toml_exits_1(self, cli_runner, tmp_path):
        bad = tmp_path / "bad.toml"
        bad.write_text("not valid toml [[[")

        result = cli_runner.invoke(app, ["proxy", "--config", str(bad)])

        assert result.exit_code == 1
        assert "Invalid TOML" in result.output

    def test_disallowed_workdir_exits_1(
        self, cli_runner, tmp_path, shellbridge_home, monkeypatch
    ):
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        monkeypatch.setenv("SHELLBRIDGE_ALLOWED_WORKDIRS", str(allowed))

        result = cli_runner.invoke(app, ["proxy", "--workdir", str(tmp_path)])

        assert result.exit_code == 1

    async def test_regular_file_stdin_exits_1(self, tmp_path: Path, socket_dir, monkeypatch):
        redirected = tmp_path / "input.jsonl"
        redirected.write_bytes(b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n')

        with open(redirected, "rb") as handle:

            class FileStdin:
                buffer = handle

            monkeypatch.setattr("sys.stdin", FileStdin())
            code = await _run_proxy(BridgeConfig(), socket_dir / "d.sock", None)

        assert code == EXIT_STARTUP_FAILURE


class TestDaemonCommand:
    """Tests for 'shellbridge daemon' command."""

    def test_bad_handler_target_exits_1(self, cli_runner, shellbridge_home):
        result = cli_runner.invoke(app, ["daemon", "--handler", "no-colon"])
        assert result.exit_code == 1
        assert "package.module:factory" in result.output

    def test_socket_conflict_exits_1(self, cli_runner, shellbridge_home, socket_dir):
        occupied = socket_dir / "d.sock"
        occupied.write_text("")

        result = cli_runner.invoke(app, ["daemon", "--socket", str(occupied)])

        assert result.exit_code == 1
        assert occupied.read_text() == ""


class TestLoadSessionFactory:
    def test_resolves_module_attribute(self):
        factory = load_session_factory(
            "tests.test_cli:build_echo_factory", BridgeConfig(disabled_methods=["ping"])
        )

        class Session:
            async def send(self, message):
                pass

        dispatcher = factory(Session())
        assert isinstance(dispatcher, RPCDispatcher)
        assert dispatcher.methods == ["echo"]

    @pytest.mark.parametrize(
        "target",
        [
            "no_colon",
            ":factory",
            "module:",
            "shellbridge.not_a_module:factory",
            "tests.test_cli:missing",
            "tests.test_cli:NOT_CALLABLE",
        ],
    )
    def test_rejects_bad_targets(self, target):
        with pytest.raises(ValueError):
            load_session_factory(target, BridgeConfig())
