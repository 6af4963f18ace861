"""Endpoint value object naming a Unix domain socket on the filesystem."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import stat
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_DEFAULT_POLL_INTERVAL = 0.5


@dataclass(frozen=True, slots=True)
class Endpoint:
    """Filesystem path of a Unix domain socket shared by server and client.

    At most one live listener may be bound to a path. The server removes a
    stale file before binding and never while it is serving.
    """

    path: str

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> Endpoint:
        return cls(os.fspath(path))

    def __str__(self) -> str:
        return self.path

    def exists(self) -> bool:
        """Whether any file currently exists at the endpoint path."""
        return os.path.lexists(self.path)

    def is_socket(self) -> bool:
        try:
            return stat.S_ISSOCK(os.lstat(self.path).st_mode)
        except OSError:
            return False

    def remove_stale(self) -> bool:
        """Unlink a leftover file at the path.

        Returns ``True`` when a file was removed. Absence is not an error; any
        other failure propagates as ``OSError``.
        """
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            return False
        logger.info("Removed stale socket file %s", self.path)
        return True

    def ensure_parent(self) -> None:
        parent = Path(self.path).parent
        parent.mkdir(parents=True, exist_ok=True)

    def wait_until_ready(
        self,
        *,
        interval: float = _DEFAULT_POLL_INTERVAL,
        timeout: float | None = None,
    ) -> bool:
        """Block until the socket file appears.

        Returns ``False`` when *timeout* elapses first. The server offers no
        readiness notification, so clients started alongside it poll here.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.exists():
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(interval)
        return True

    async def wait_until_ready_async(
        self,
        *,
        interval: float = _DEFAULT_POLL_INTERVAL,
        timeout: float | None = None,
    ) -> bool:
        """Async variant of :meth:`wait_until_ready`."""
        with contextlib.suppress(TimeoutError):
            async with asyncio.timeout(timeout):
                while not self.exists():
                    await asyncio.sleep(interval)
                return True
        return False


__all__ = ["Endpoint"]
