"""Transport layer.

Provides the network boundary used by the dispatcher and the stream router:
- HTTPTransport - REST commands and streaming responses over httpx
- MockTransport - In-memory transport for tests

Both satisfy the Transport protocol, so the core never depends on which one
is in use.
"""

from .base import LineStream, StreamKind, StreamRequest, Transport
from .http import HTTPLineStream, HTTPTransport, create_http_transport
from .mock import MockLineStream, MockTransport, create_mock_transport

__all__ = [
    # Protocols
    "Transport",
    "LineStream",
    "StreamKind",
    "StreamRequest",
    # HTTP
    "HTTPTransport",
    "HTTPLineStream",
    "create_http_transport",
    # Mock
    "MockTransport",
    "MockLineStream",
    "create_mock_transport",
]
