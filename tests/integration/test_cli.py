"""Tests for the unixsockmon command-line entry point."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from unixsockmon.__main__ import _acknowledge, cli
from unixsockmon.errors import BindError
from unixsockmon.ipc.framing import LengthPrefixedFramer, LineFramer
from unixsockmon.ipc.server import IPCServer

if TYPE_CHECKING:
    from pathlib import Path

    from unixsockmon.ipc.contracts import Handler
    from unixsockmon.ipc.endpoint import Endpoint
    from unixsockmon.ipc.framing import Framer

pytestmark = pytest.mark.integration


class _ServerThread:
    """Run an IPCServer on its own event loop so the CLI can call asyncio.run."""

    def __init__(self, endpoint: Endpoint, framer: Framer, handler: Handler) -> None:
        self._loop = asyncio.new_event_loop()
        self._server = IPCServer(endpoint, framer, handler)
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)

    def __enter__(self) -> _ServerThread:
        self._thread.start()
        asyncio.run_coroutine_threadsafe(self._server.start(), self._loop).result(timeout=5)
        return self

    def __exit__(self, *exc_info: object) -> None:
        asyncio.run_coroutine_threadsafe(self._server.stop(), self._loop).result(timeout=5)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._loop.close()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(
        "[client]\n"
        "ready_poll_interval = 0.05\n"
        "ready_timeout_seconds = 0.3\n"
        "timeout_seconds = 5\n"
        "\n"
        "[logging]\n"
        'level = "warning"\n'
    )
    return path


class TestUsage:
    @pytest.mark.parametrize("args", [[], ["a", "b", "c"]], ids=["none", "three"])
    def test_wrong_argument_count_prints_usage(self, mocker, args):
        serve = mocker.patch("unixsockmon.__main__.serve")

        result = CliRunner().invoke(cli, args)

        assert result.exit_code == 2
        assert "Usage" in result.output
        serve.assert_not_called()

    def test_help_lists_options(self):
        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        for option in ("--framing", "--max-connections", "--config", "--log-level"):
            assert option in result.output

    def test_unknown_framing_is_rejected(self):
        result = CliRunner().invoke(cli, ["--framing", "json", "/tmp/x.sock"])

        assert result.exit_code == 2


class TestServerMode:
    def test_serves_given_path_with_acknowledging_handler(self, mocker, endpoint, config_file):
        calls: list[tuple] = []

        async def fake_serve(ep, framer, handler, **options):
            calls.append((ep, framer, handler, options))

        mocker.patch("unixsockmon.__main__.serve", new=fake_serve)

        result = CliRunner().invoke(cli, ["--config", str(config_file), endpoint.path])

        assert result.exit_code == 0, result.output
        [(ep, framer, handler, options)] = calls
        assert ep == endpoint
        assert isinstance(framer, LineFramer)
        assert handler is _acknowledge
        assert options == {"max_connections": None, "socket_mode": None}

    def test_options_override_config(self, mocker, endpoint, config_file):
        calls: list[tuple] = []

        async def fake_serve(ep, framer, handler, **options):
            calls.append((framer, options))

        mocker.patch("unixsockmon.__main__.serve", new=fake_serve)

        result = CliRunner().invoke(
            cli,
            [
                "--config",
                str(config_file),
                "--framing",
                "length",
                "--max-connections",
                "3",
                endpoint.path,
            ],
        )

        assert result.exit_code == 0, result.output
        [(framer, options)] = calls
        assert isinstance(framer, LengthPrefixedFramer)
        assert options["max_connections"] == 3

    def test_bind_failure_exits_with_error(self, mocker, endpoint, config_file):
        async def failing_serve(*args, **kwargs):
            raise BindError("cannot bind /nowhere")

        mocker.patch("unixsockmon.__main__.serve", new=failing_serve)

        result = CliRunner().invoke(cli, ["--config", str(config_file), endpoint.path])

        assert result.exit_code == 1
        assert "cannot bind /nowhere" in result.output

    def test_interrupt_exits_cleanly(self, mocker, endpoint, config_file):
        async def interrupted_serve(*args, **kwargs):
            raise KeyboardInterrupt

        mocker.patch("unixsockmon.__main__.serve", new=interrupted_serve)

        result = CliRunner().invoke(cli, ["--config", str(config_file), endpoint.path])

        assert result.exit_code == 0

    def test_acknowledge_prints_request_and_answers_ok(self, capsys):
        assert _acknowledge("a fox jumps over the lazy dog") == "OK"
        assert capsys.readouterr().out == "Server: a fox jumps over the lazy dog\n"


class TestClientMode:
    def test_sends_line_and_prints_response(self, endpoint, config_file):
        received: list[str] = []

        def handler(request: str) -> str:
            received.append(request)
            return "OK"

        with _ServerThread(endpoint, LineFramer(), handler):
            result = CliRunner().invoke(
                cli,
                ["--config", str(config_file), endpoint.path, "a fox jumps over the lazy dog"],
            )

        assert result.exit_code == 0, result.output
        assert result.output == "OK\n"
        assert received == ["a fox jumps over the lazy dog"]

    def test_sends_length_prefixed_when_requested(self, endpoint, config_file):
        with _ServerThread(endpoint, LengthPrefixedFramer(), lambda r: f"got {len(r)}"):
            result = CliRunner().invoke(
                cli,
                ["--config", str(config_file), "--framing", "length", endpoint.path, "héllo"],
            )

        assert result.exit_code == 0, result.output
        assert result.output == "got 5\n"

    def test_error_response_exits_nonzero(self, endpoint, config_file):
        def handler(request: str) -> str:
            raise RuntimeError("handler broke")

        with _ServerThread(endpoint, LineFramer(), handler):
            result = CliRunner().invoke(cli, ["--config", str(config_file), endpoint.path, "x"])

        assert result.exit_code == 1
        assert "ERR" in result.output.splitlines()

    def test_waits_for_socket_to_appear(self, endpoint, tmp_path):
        config = tmp_path / "patient.toml"
        config.write_text("[client]\nready_poll_interval = 0.05\n[logging]\nlevel = 'WARNING'\n")
        server = _ServerThread(endpoint, LineFramer(), lambda r: "late but here")
        timer = threading.Timer(0.2, server.__enter__)
        timer.start()
        try:
            result = CliRunner().invoke(cli, ["--config", str(config), endpoint.path, "hi"])
        finally:
            timer.join()
            server.__exit__(None, None, None)

        assert result.exit_code == 0, result.output
        assert result.output == "late but here\n"

    def test_missing_socket_times_out(self, endpoint, config_file):
        result = CliRunner().invoke(cli, ["--config", str(config_file), endpoint.path, "hello"])

        assert result.exit_code == 1
        assert "did not appear" in result.output

    def test_non_socket_file_reports_request_failure(self, endpoint, config_file):
        with open(endpoint.path, "w") as f:
            f.write("not a socket")

        result = CliRunner().invoke(cli, ["--config", str(config_file), endpoint.path, "hello"])

        assert result.exit_code == 1
        assert "request failed" in result.output
