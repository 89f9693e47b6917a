"""Error taxonomy for the dispatcher and the stream router.

Every error raised or reported by the library derives from StarlingError.
Transport failures travel to a command's failure handler; decode and routing
errors travel to a session's error callback. QueueClosed and
SessionClosedError are raised directly at the API boundary.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .protocol.events import StreamEvent


class FailureKind(str, Enum):
    """What went wrong on the way to (or back from) the API."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP = "http"
    AUTHORIZATION = "authorization"
    RATE_LIMITED = "rate_limited"
    STREAM_CLOSED = "stream_closed"
    STALLED = "stalled"
    UNEXPECTED = "unexpected"


class StarlingError(Exception):
    """Base class for all library errors."""


class TransportFailure(StarlingError):
    """Network or HTTP level failure.

    Attributes:
        kind: Failure category
        status_code: HTTP status, when a response was received
        retry_after: Server hint (seconds) before retrying, if any
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind = FailureKind.NETWORK,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        return data

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(kind={self.kind.value!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class AuthorizationError(TransportFailure):
    """Credentials were rejected (401/403). Streams never retry on this."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, kind=FailureKind.AUTHORIZATION, status_code=status_code)


class DecodeError(StarlingError):
    """A stream line could not be turned into an event."""

    def __init__(self, message: str, line: str | None = None) -> None:
        super().__init__(message)
        self.line = line


class RoutingError(StarlingError):
    """An event arrived for a subscriber with no registered handler set."""

    def __init__(self, subscriber_id: int | str | None, event: StreamEvent | None = None) -> None:
        if subscriber_id is None:
            message = "No global handler set registered for untagged event"
        else:
            message = f"No handler set registered for subscriber {subscriber_id!r}"
        super().__init__(message)
        self.subscriber_id = subscriber_id
        self.event = event


class QueueClosed(StarlingError):
    """A command was submitted after the dispatcher was closed."""


class SessionClosedError(StarlingError):
    """An operation was attempted on a closed stream session."""
