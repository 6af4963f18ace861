"""Unix domain socket transport for unixsockmon.

Owns the filesystem side of the endpoint: stale-file cleanup before bind,
optional permissions after bind, and removal after shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import platform
from dataclasses import dataclass
from typing import TYPE_CHECKING

from unixsockmon.errors import BindError, ConnectError
from unixsockmon.ipc.constants import STREAM_LIMIT_BYTES

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

    from unixsockmon.ipc.endpoint import Endpoint

    ClientHandler = Callable[
        [asyncio.StreamReader, asyncio.StreamWriter],
        Coroutine[Any, Any, None],
    ]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerHandle:
    """Handle returned after starting a transport server.

    Attributes:
        address: The socket file path the listener is bound to.
        server: The underlying ``asyncio.Server``.
        close: Async callable that stops listening and removes the socket file.
    """

    address: str
    server: asyncio.Server
    close: Callable[[], Coroutine[Any, Any, None]]


class UnixSocketTransport:
    """IPC transport over Unix domain sockets.

    Only available on macOS and Linux. On Windows this class raises
    ``NotImplementedError`` at construction time.
    """

    def __init__(self, endpoint: Endpoint, *, limit: int = STREAM_LIMIT_BYTES) -> None:
        if platform.system() == "Windows":
            msg = "Unix sockets are not supported on Windows"
            raise NotImplementedError(msg)
        self._endpoint = endpoint
        self._limit = limit

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    async def start_server(
        self,
        handler: ClientHandler,
        *,
        mode: int | None = None,
    ) -> ServerHandle:
        """Bind a Unix socket server at the endpoint path.

        Any stale file is removed before binding. Failing to remove it, or to
        bind, raises ``BindError``.
        """
        path = self._endpoint.path
        if self._endpoint.exists() and not self._endpoint.is_socket():
            logger.warning("Replacing non-socket file at %s", path)
        try:
            self._endpoint.remove_stale()
            self._endpoint.ensure_parent()
        except OSError as exc:
            msg = f"cannot clear endpoint {path}: {exc}"
            raise BindError(msg) from exc

        try:
            server = await asyncio.start_unix_server(handler, path=path, limit=self._limit)
        except OSError as exc:
            msg = f"cannot bind {path}: {exc}"
            raise BindError(msg) from exc

        async def _close() -> None:
            server.close()
            await server.wait_closed()
            with contextlib.suppress(FileNotFoundError):
                os.unlink(path)
            logger.info("Unix socket server stopped")

        if mode is not None:
            try:
                os.chmod(path, mode)
            except OSError as exc:
                await _close()
                msg = f"cannot set mode {mode:o} on {path}: {exc}"
                raise BindError(msg) from exc

        logger.info("Unix socket server listening on %s", path)

        return ServerHandle(address=path, server=server, close=_close)

    async def connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Open a connection to the endpoint, raising ``ConnectError`` on failure."""
        path = self._endpoint.path
        try:
            reader, writer = await asyncio.open_unix_connection(path, limit=self._limit)
        except OSError as exc:
            msg = f"cannot connect to {path}: {exc}"
            raise ConnectError(msg) from exc
        logger.debug("Connected to Unix socket at %s", path)
        return reader, writer


__all__ = [
    "ServerHandle",
    "UnixSocketTransport",
]
