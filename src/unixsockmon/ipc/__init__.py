"""Endpoint, framing, and transport layer plus the server and client roles."""

from __future__ import annotations

from unixsockmon.ipc.client import IPCClient, send_framed, send_line
from unixsockmon.ipc.constants import ERROR_SENTINEL
from unixsockmon.ipc.contracts import ConnectionEvent, ConnectionState
from unixsockmon.ipc.endpoint import Endpoint
from unixsockmon.ipc.framing import Framer, LengthPrefixedFramer, LineFramer, get_framer
from unixsockmon.ipc.server import IPCServer, run, serve

__all__ = [
    "ERROR_SENTINEL",
    "ConnectionEvent",
    "ConnectionState",
    "Endpoint",
    "Framer",
    "IPCClient",
    "IPCServer",
    "LengthPrefixedFramer",
    "LineFramer",
    "get_framer",
    "run",
    "send_framed",
    "send_line",
    "serve",
]
