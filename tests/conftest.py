"""Pytest fixtures for unixsockmon tests."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

from unixsockmon.ipc.endpoint import Endpoint
from unixsockmon.ipc.framing import LineFramer
from unixsockmon.ipc.server import IPCServer

_TEST_BASE_DIR = Path(tempfile.mkdtemp(prefix="usm-tests-"))
os.environ["UNIXSOCKMON_CONFIG_DIR"] = str(_TEST_BASE_DIR / "config")

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable, Generator

    from unixsockmon.ipc.contracts import Handler
    from unixsockmon.ipc.framing import Framer

    StartServer = Callable[..., Awaitable[IPCServer]]


settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture
def short_tmp() -> Generator[Path, None, None]:
    """Create a short temp directory for Unix socket paths (macOS 104-byte limit)."""
    d = tempfile.mkdtemp(prefix="u-", dir="/tmp")
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def endpoint(short_tmp: Path) -> Endpoint:
    return Endpoint(str(short_tmp / "t.sock"))


@pytest.fixture
async def start_server(endpoint: Endpoint) -> AsyncGenerator[StartServer, None]:
    """Start IPCServers on the test endpoint and stop them afterwards."""
    servers: list[IPCServer] = []

    async def _start(
        handler: Handler,
        framer: Framer | None = None,
        **options: object,
    ) -> IPCServer:
        server = IPCServer(endpoint, framer or LineFramer(), handler, **options)  # type: ignore[arg-type]
        await server.start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        await server.stop()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Generator[None, None, None]:
    """Undo CLI logging setup so caplog keeps seeing package records."""
    yield
    logger = logging.getLogger("unixsockmon")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
