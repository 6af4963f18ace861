"""Handler and per-connection lifecycle types shared by the IPC roles."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeAlias

SyncHandler: TypeAlias = Callable[[str], str]
AsyncHandler: TypeAlias = Callable[[str], Awaitable[str]]
Handler: TypeAlias = SyncHandler | AsyncHandler


class ConnectionState(StrEnum):
    """Server-side lifecycle of one accepted connection.

    ``accepted -> reading -> handling -> responding -> closed``; a framing
    failure goes straight from ``reading`` to ``closed``.
    """

    ACCEPTED = "accepted"
    READING = "reading"
    HANDLING = "handling"
    RESPONDING = "responding"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    """Published on every connection state transition."""

    connection_id: int
    state: ConnectionState
    detail: str | None = None


__all__ = [
    "AsyncHandler",
    "ConnectionEvent",
    "ConnectionState",
    "Handler",
    "SyncHandler",
]
