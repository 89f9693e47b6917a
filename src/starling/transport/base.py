"""Transport boundary.

The dispatcher and the router talk to the network only through these
interfaces, so HTTP can be swapped for an in-memory transport in tests
without changing either of them.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from ..protocol.commands import Command, CommandResult


class StreamKind(str, Enum):
    """Streaming endpoints."""

    SITE = "site"  # Multiplexed: many followed accounts on one connection
    USER = "user"  # Single authenticated account
    SAMPLE = "sample"
    FILTER = "filter"


class StreamRequest(BaseModel):
    """Describes which stream to open."""

    model_config = ConfigDict(frozen=True)

    kind: StreamKind = StreamKind.USER
    follow: list[int] = Field(default_factory=list)
    track: list[str] = Field(default_factory=list)
    with_followings: bool = False

    @classmethod
    def site(cls, follow: list[int], with_followings: bool = False) -> StreamRequest:
        return cls(kind=StreamKind.SITE, follow=follow, with_followings=with_followings)

    @classmethod
    def user(cls) -> StreamRequest:
        return cls(kind=StreamKind.USER)


@runtime_checkable
class LineStream(Protocol):
    """A long-lived, line-oriented connection."""

    async def readline(self) -> str | None:
        """Return the next line (without newline), or None at end of stream.

        Raises:
            TransportFailure: If the connection breaks
        """
        ...

    async def aclose(self) -> None:
        """Close the connection. Safe to call more than once."""
        ...


@runtime_checkable
class Transport(Protocol):
    """Protocol for API transports.

    invoke() never raises for network or HTTP failures; they come back as a
    failed CommandResult. open_stream() raises TransportFailure (or
    AuthorizationError) if the stream cannot be opened.
    """

    async def invoke(self, command: Command) -> CommandResult:
        """Execute one command and return its result."""
        ...

    async def open_stream(self, request: StreamRequest) -> LineStream:
        """Open a streaming connection."""
        ...

    async def aclose(self) -> None:
        """Release connections."""
        ...
