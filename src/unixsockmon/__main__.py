"""CLI entry point for unixsockmon.

``unixsockmon SOCK`` serves SOCK and answers every request with ``OK``;
``unixsockmon SOCK MESSAGE`` waits for SOCK to appear, sends MESSAGE and prints
the response.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from unixsockmon import __version__
from unixsockmon.config import LOG_LEVEL_VALUES, UnixSockMonConfig
from unixsockmon.errors import IPCError
from unixsockmon.ipc.client import IPCClient
from unixsockmon.ipc.constants import ERROR_SENTINEL
from unixsockmon.ipc.endpoint import Endpoint
from unixsockmon.ipc.framing import FRAMER_NAMES
from unixsockmon.ipc.server import serve
from unixsockmon.log import configure_logging

logger = logging.getLogger("unixsockmon.cli")

USAGE = "Usage: unixsockmon [OPTIONS] <sock> [message]"


def _acknowledge(request: str) -> str:
    click.echo(f"Server: {request}")
    return "OK"


def _run_server(endpoint: Endpoint, config: UnixSockMonConfig) -> None:
    server_cfg = config.server
    try:
        asyncio.run(
            serve(
                endpoint,
                server_cfg.framer(),
                _acknowledge,
                max_connections=server_cfg.max_connections,
                socket_mode=server_cfg.socket_mode,
            )
        )
    except KeyboardInterrupt:
        logger.info("Server interrupted")
    except IPCError as exc:
        raise click.ClickException(str(exc)) from exc


def _run_client(endpoint: Endpoint, message: str, config: UnixSockMonConfig) -> None:
    client_cfg = config.client
    ready = endpoint.wait_until_ready(
        interval=client_cfg.ready_poll_interval,
        timeout=client_cfg.ready_timeout_seconds,
    )
    if not ready:
        msg = f"socket {endpoint} did not appear"
        raise click.ClickException(msg)

    client = IPCClient(endpoint, timeout=client_cfg.timeout_seconds)
    framer = config.server.framer()
    try:
        response = asyncio.run(client.send(framer, message))
    except OSError as exc:
        raise click.ClickException(f"request failed: {exc}") from exc

    click.echo(response)
    if response == ERROR_SENTINEL:
        raise SystemExit(1)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("args", nargs=-1, metavar="<sock> [message]")
@click.option(
    "--framing",
    type=click.Choice(FRAMER_NAMES),
    default=None,
    help="Request framing (overrides config; default line).",
)
@click.option(
    "--max-connections",
    type=click.IntRange(min=1),
    default=None,
    help="Server mode: connections handled at once (default unbounded).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to config.toml.",
)
@click.option(
    "--log-level",
    type=click.Choice(sorted(LOG_LEVEL_VALUES), case_sensitive=False),
    default=None,
    help="Log level (overrides config).",
)
@click.version_option(__version__, prog_name="unixsockmon")
def cli(
    args: tuple[str, ...],
    framing: str | None,
    max_connections: int | None,
    config_path: Path | None,
    log_level: str | None,
) -> None:
    """Serve a Unix socket, or send one message to it."""
    if len(args) not in (1, 2):
        click.echo(USAGE, err=True)
        raise SystemExit(2)

    config = UnixSockMonConfig.load(config_path)
    if framing is not None:
        config.server.framing = framing  # type: ignore[assignment]
    if max_connections is not None:
        config.server.max_connections = max_connections
    configure_logging(log_level or config.logging.level, config.logging.format)

    endpoint = Endpoint(args[0])
    if len(args) == 1:
        _run_server(endpoint, config)
    else:
        _run_client(endpoint, args[1], config)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
