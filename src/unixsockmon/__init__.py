"""unixsockmon: one-request-per-connection IPC over Unix domain sockets."""

from __future__ import annotations

from unixsockmon.errors import (
    AcceptError,
    BindError,
    ConnectError,
    DecodeError,
    FramingError,
    HandlerError,
    IPCError,
)
from unixsockmon.ipc import (
    ERROR_SENTINEL,
    Endpoint,
    IPCClient,
    IPCServer,
    LengthPrefixedFramer,
    LineFramer,
    send_framed,
    send_line,
    serve,
)

__version__ = "0.1.0"

__all__ = [
    "ERROR_SENTINEL",
    "AcceptError",
    "BindError",
    "ConnectError",
    "DecodeError",
    "Endpoint",
    "FramingError",
    "HandlerError",
    "IPCClient",
    "IPCError",
    "IPCServer",
    "LengthPrefixedFramer",
    "LineFramer",
    "send_framed",
    "send_line",
    "serve",
]
