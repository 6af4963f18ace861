"""Shared IPC framing constants."""

from __future__ import annotations

# StreamReader buffer limit. Framers read longer messages in chunks of this size.
STREAM_LIMIT_BYTES = 4 * 1024 * 1024

LENGTH_PREFIX_BYTES = 4
MAX_FRAMED_PAYLOAD = 2**32 - 1

ERROR_SENTINEL = "ERR"

__all__ = [
    "ERROR_SENTINEL",
    "LENGTH_PREFIX_BYTES",
    "MAX_FRAMED_PAYLOAD",
    "STREAM_LIMIT_BYTES",
]
