"""Starling - asynchronous client for a social messaging API.

Two execution paths share one transport:
- Commands: submit_async() queues an API call; a dispatcher worker runs it
  and invokes exactly one completion callback
- Streams: start_stream() opens a long-lived connection; a router task
  decodes each line and hands the event to the subscriber it is tagged for
"""

from .client import StarlingClient, create_client, create_test_client
from .config import StarlingConfig
from .dispatcher import CommandDispatcher
from .errors import (
    AuthorizationError,
    DecodeError,
    FailureKind,
    QueueClosed,
    RoutingError,
    SessionClosedError,
    StarlingError,
    TransportFailure,
)
from .protocol import Command, CommandResult, CommandType, StreamEvent, StreamEventType
from .stream import Backoff, SessionState, StreamSession
from .subscribers import GLOBAL_SUBSCRIBER, HandlerSet, SubscriberTable, SubscriptionHandle
from .transport import MockTransport, StreamKind, StreamRequest

__all__ = [
    # Client
    "StarlingClient",
    "StarlingConfig",
    "create_client",
    "create_test_client",
    # Commands
    "Command",
    "CommandResult",
    "CommandType",
    "CommandDispatcher",
    # Streams
    "StreamRequest",
    "StreamKind",
    "StreamSession",
    "SessionState",
    "Backoff",
    "StreamEvent",
    "StreamEventType",
    "HandlerSet",
    "SubscriberTable",
    "SubscriptionHandle",
    "GLOBAL_SUBSCRIBER",
    # Errors
    "StarlingError",
    "TransportFailure",
    "AuthorizationError",
    "FailureKind",
    "DecodeError",
    "RoutingError",
    "QueueClosed",
    "SessionClosedError",
    # Testing
    "MockTransport",
]
