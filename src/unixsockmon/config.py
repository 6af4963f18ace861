"""Configuration loader for unixsockmon."""

from __future__ import annotations

import logging
import tomllib
from typing import TYPE_CHECKING, Literal, TypeAlias

from pydantic import BaseModel, Field, field_validator

from unixsockmon.ipc.framing import FRAMER_NAMES, get_framer
from unixsockmon.log import DEFAULT_FORMAT
from unixsockmon.paths import get_config_path

if TYPE_CHECKING:
    from pathlib import Path

    from unixsockmon.ipc.framing import Framer

logger = logging.getLogger(__name__)

FramingLiteral: TypeAlias = Literal["line", "length"]

LOG_LEVEL_VALUES = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class ServerConfig(BaseModel):
    """Settings for the serving side."""

    framing: FramingLiteral = Field(default="line", description="Request framing: line or length")
    max_connections: int | None = Field(
        default=None,
        ge=1,
        description="Connections handled at once (None = one task per connection, unbounded)",
    )
    max_message_bytes: int | None = Field(
        default=None,
        ge=0,
        description="Largest request accepted by either framing, in bytes (None = no cap)",
    )
    socket_mode: int | None = Field(
        default=None,
        ge=0,
        le=0o777,
        description="Permission bits applied to the socket after bind (e.g. 0o600)",
    )

    @field_validator("framing", mode="before")
    @classmethod
    def validate_framing(cls, value: object) -> str:
        """Gracefully coerce unknown framing names to line."""
        match value:
            case str() as name if name in FRAMER_NAMES:
                return name
            case _:
                pass
        return "line"

    def framer(self) -> Framer:
        return get_framer(self.framing, max_length=self.max_message_bytes)


class ClientConfig(BaseModel):
    """Settings for the sending side."""

    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Bound on one request/response exchange (None = wait for the server)",
    )
    ready_poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Seconds between checks for the socket file before sending",
    )
    ready_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Give up waiting for the socket file after this long (None = forever)",
    )


class LoggingConfig(BaseModel):
    """Settings for the CLI log handler."""

    level: str = Field(default="INFO")
    format: str = Field(default=DEFAULT_FORMAT)

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, value: object) -> str:
        """Coerce unknown level names to INFO."""
        match value:
            case str() as level if level.upper() in LOG_LEVEL_VALUES:
                return level.upper()
            case _:
                pass
        return "INFO"


class UnixSockMonConfig(BaseModel):
    """Root configuration model."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> UnixSockMonConfig:
        """Load configuration from TOML file or use defaults."""
        if config_path is None:
            config_path = get_config_path()

        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            logger.debug("Loaded config from %s", config_path)
            return cls.model_validate(data)

        return cls()


__all__ = [
    "ClientConfig",
    "LoggingConfig",
    "ServerConfig",
    "UnixSockMonConfig",
]
