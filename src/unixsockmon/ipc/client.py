"""IPC client: connect, write one framed request, read until the server closes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from unixsockmon.ipc.framing import LengthPrefixedFramer, LineFramer, decode_text
from unixsockmon.ipc.transports import UnixSocketTransport

if TYPE_CHECKING:
    from unixsockmon.ipc.endpoint import Endpoint
    from unixsockmon.ipc.framing import Framer

logger = logging.getLogger(__name__)


class IPCClient:
    """Client for a one-request-per-connection server.

    Each call opens a fresh connection; the response is everything the server
    writes before closing its end. The client never retries: a missing
    listener raises ``ConnectError`` and the caller decides what to do.

    Usage::

        client = IPCClient(Endpoint("/tmp/app.sock"))
        reply = await client.send_line("status")
        reply = await client.send_framed(b"status")
    """

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        timeout: float | None = None,
        transport: UnixSocketTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._transport = transport or UnixSocketTransport(endpoint)

    @property
    def endpoint(self) -> Endpoint:
        """Endpoint this client connects to."""
        return self._endpoint

    async def send_line(self, message: str) -> str:
        """Send *message* newline-terminated, appending ``\\n`` when missing."""
        return await self.send(LineFramer(), message)

    async def send_framed(self, payload: bytes | str) -> str:
        """Send *payload* behind a 4-byte big-endian length prefix."""
        return await self.send(LengthPrefixedFramer(), payload)

    async def send(self, framer: Framer, message: str | bytes) -> str:
        """Encode *message* with *framer*, send it, and return the response.

        Raises:
            ConnectError: If no listener accepts the connection.
            FramingError: If *message* cannot be encoded by *framer*.
            DecodeError: If the response is not valid UTF-8.
            TimeoutError: If a timeout is configured and the exchange exceeds it.
            OSError: On any other read or write failure.
        """
        data = framer.encode(message)
        async with asyncio.timeout(self._timeout):
            raw = await self._exchange(data)
        return decode_text(raw)

    async def _exchange(self, data: bytes) -> bytes:
        reader, writer = await self._transport.connect()
        try:
            writer.write(data)
            await writer.drain()
            raw = await reader.read()
        finally:
            writer.close()
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()
        logger.debug(
            "Exchange with %s: sent %d bytes, received %d bytes",
            self._endpoint,
            len(data),
            len(raw),
        )
        return raw


async def send_line(endpoint: Endpoint, message: str) -> str:
    """Send one line request to *endpoint* and return the response."""
    return await IPCClient(endpoint).send_line(message)


async def send_framed(endpoint: Endpoint, payload: bytes | str) -> str:
    """Send one length-prefixed request to *endpoint* and return the response."""
    return await IPCClient(endpoint).send_framed(payload)


__all__ = ["IPCClient", "send_framed", "send_line"]
