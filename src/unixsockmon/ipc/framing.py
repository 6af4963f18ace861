"""Request framing strategies.

A framer extracts exactly one request message from a stream and knows how to
encode a message for the wire. Two strategies ship with the package:

``line``
    UTF-8 text terminated by ``\\n``. End-of-stream also ends the message, so a
    peer that closes before sending a newline delivers whatever it wrote.

``length``
    A 4-byte big-endian unsigned length ``L`` followed by ``L`` bytes of UTF-8.

Responses are not framed: the server writes raw bytes and closes.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from typing import TYPE_CHECKING, Protocol

from unixsockmon.errors import DecodeError, FramingError
from unixsockmon.ipc.constants import LENGTH_PREFIX_BYTES, MAX_FRAMED_PAYLOAD

if TYPE_CHECKING:
    from typing import ClassVar

logger = logging.getLogger(__name__)

_LENGTH = struct.Struct(">I")


class Framer(Protocol):
    """Reads one request from a stream and encodes requests for sending."""

    name: ClassVar[str]

    async def read(self, reader: asyncio.StreamReader) -> str: ...

    def encode(self, message: str | bytes) -> bytes: ...


def _as_bytes(message: str | bytes) -> bytes:
    if isinstance(message, str):
        return message.encode("utf-8")
    return bytes(message)


def decode_text(data: bytes) -> str:
    """Decode UTF-8 or raise ``DecodeError`` chained to the codec error."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.warning("Received %d bytes that are not valid UTF-8: %s", len(data), exc)
        msg = "message is not valid UTF-8 text"
        raise DecodeError(msg) from exc


class LineFramer:
    """Newline-terminated text messages.

    Lines longer than the reader's buffer limit are read in chunks, so the
    only cap on a line is ``max_length`` (bytes, newline excluded). ``None``
    accepts lines of any length.
    """

    name: ClassVar[str] = "line"

    def __init__(self, max_length: int | None = None) -> None:
        self.max_length = max_length

    async def read(self, reader: asyncio.StreamReader) -> str:
        chunks: list[bytes] = []
        size = 0
        try:
            while True:
                try:
                    chunk = await reader.readuntil(b"\n")
                except asyncio.IncompleteReadError as exc:
                    # End of stream before a newline ends the message too.
                    chunk = exc.partial
                    done = True
                except asyncio.LimitOverrunError as exc:
                    chunk = await reader.readexactly(exc.consumed)
                    done = False
                else:
                    chunk = chunk[:-1]
                    done = True
                size += len(chunk)
                if self.max_length is not None and size > self.max_length:
                    msg = f"line request exceeds limit {self.max_length}"
                    raise FramingError(msg)
                chunks.append(chunk)
                if done:
                    break
        except asyncio.IncompleteReadError as exc:
            msg = f"stream closed while reading a line request: {exc}"
            raise FramingError(msg) from exc
        except FramingError:
            raise
        except OSError as exc:
            msg = f"failed to read line request: {exc}"
            raise FramingError(msg) from exc

        return decode_text(b"".join(chunks))

    def encode(self, message: str | bytes) -> bytes:
        data = _as_bytes(message)
        if not data.endswith(b"\n"):
            data += b"\n"
        return data


class LengthPrefixedFramer:
    """Messages preceded by a 4-byte big-endian length.

    ``max_length`` caps the declared length a server accepts; ``None`` accepts
    anything a u32 can express.
    """

    name: ClassVar[str] = "length"

    def __init__(self, max_length: int | None = None) -> None:
        self.max_length = max_length

    async def read(self, reader: asyncio.StreamReader) -> str:
        try:
            header = await reader.readexactly(LENGTH_PREFIX_BYTES)
            (length,) = _LENGTH.unpack(header)
            if self.max_length is not None and length > self.max_length:
                msg = f"declared length {length} exceeds limit {self.max_length}"
                raise FramingError(msg)
            payload = await reader.readexactly(length)
        except asyncio.IncompleteReadError as exc:
            msg = (
                f"stream closed after {len(exc.partial)} of {exc.expected} bytes "
                "of a length-prefixed request"
            )
            raise FramingError(msg) from exc
        except FramingError:
            raise
        except OSError as exc:
            msg = f"failed to read length-prefixed request: {exc}"
            raise FramingError(msg) from exc

        return decode_text(payload)

    def encode(self, message: str | bytes) -> bytes:
        data = _as_bytes(message)
        if len(data) > MAX_FRAMED_PAYLOAD:
            msg = f"payload of {len(data)} bytes does not fit a 4-byte length prefix"
            raise FramingError(msg)
        return _LENGTH.pack(len(data)) + data


_FRAMERS: dict[str, type[LineFramer] | type[LengthPrefixedFramer]] = {
    LineFramer.name: LineFramer,
    LengthPrefixedFramer.name: LengthPrefixedFramer,
}

FRAMER_NAMES = tuple(_FRAMERS)


def get_framer(name: str, *, max_length: int | None = None) -> Framer:
    """Instantiate a framer by its registered name (``line`` or ``length``).

    *max_length* caps the request size in bytes for either framing.
    """
    cls = _FRAMERS.get(name)
    if cls is None:
        msg = f"unknown framing {name!r}; expected one of {', '.join(FRAMER_NAMES)}"
        raise ValueError(msg)
    return cls(max_length=max_length)


__all__ = [
    "FRAMER_NAMES",
    "Framer",
    "LengthPrefixedFramer",
    "LineFramer",
    "decode_text",
    "get_framer",
]
