"""Error hierarchy shared by the server and client roles.

Every error is an ``OSError`` so callers have a single I/O-class channel to
catch, while the subclasses keep the failure kinds distinguishable.
"""

from __future__ import annotations


class IPCError(OSError):
    """Base class for all unixsockmon failures."""


class BindError(IPCError):
    """The endpoint path cannot be cleaned up or bound. Fatal to ``serve``."""


class AcceptError(IPCError):
    """Accepting a connection failed. Transient: logged, the listener keeps going."""


class FramingError(IPCError):
    """A request was malformed or truncated. The connection is abandoned."""


class DecodeError(FramingError):
    """Bytes that must be UTF-8 text were not."""


class HandlerError(Exception):
    """Application failure raised by a request handler.

    Reported to the client as the ``ERR`` sentinel, never as a connection
    failure. Handlers may raise any exception to the same effect.
    """


class WriteError(IPCError):
    """Delivering a response failed. Logged; the connection is still closed."""


class ConnectError(IPCError):
    """The client could not reach the endpoint."""


__all__ = [
    "AcceptError",
    "BindError",
    "ConnectError",
    "DecodeError",
    "FramingError",
    "HandlerError",
    "IPCError",
    "WriteError",
]
