"""In-memory transport for testing.

Allows injecting canned command responses and scripting stream connections
line by line. No actual I/O.

Usage:
    transport = MockTransport()
    transport.set_response("statuses.update", {"id": 1, "text": "hi"})

    stream = transport.add_stream()
    stream.push_line('{"friends": [1, 2]}')
    transport.add_connect_failure(TransportFailure("refused"))

    client = StarlingClient(transport=transport)
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any

from ..errors import FailureKind, TransportFailure
from ..protocol.commands import Command, CommandResult
from .base import StreamRequest

# End-of-stream marker on a MockLineStream queue
_EOF = object()


class MockLineStream:
    """Scriptable line stream. readline() blocks until something is pushed."""

    def __init__(self, lines: list[str] | None = None) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False
        for line in lines or []:
            self.push_line(line)

    def push_line(self, line: str) -> None:
        self._queue.put_nowait(line)

    def push_lines(self, lines: list[str]) -> None:
        for line in lines:
            self.push_line(line)

    def fail(self, error: BaseException | None = None) -> None:
        """Make the next read (after queued lines) raise."""
        self._queue.put_nowait(
            error or TransportFailure("Connection reset", kind=FailureKind.NETWORK)
        )

    def end(self) -> None:
        """Make the next read (after queued lines) report end of stream."""
        self._queue.put_nowait(_EOF)

    async def readline(self) -> str | None:
        if self.closed:
            return None
        item = await self._queue.get()
        if item is _EOF:
            return None
        if isinstance(item, BaseException):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


class MockTransport:
    """Mock transport for testing.

    Commands get the canned response for their operation (or {"mock": True}).
    Each open_stream() call consumes the next scripted connection; once the
    script is exhausted, an idle stream that never yields is returned.
    """

    def __init__(self) -> None:
        self._responses: dict[str, Any] = {}
        self._failures: dict[str, TransportFailure] = {}
        self._exceptions: dict[str, BaseException] = {}
        self._recorded_commands: list[Command] = []
        self._connections: deque[MockLineStream | BaseException] = deque()
        self.stream_requests: list[StreamRequest] = []
        self.opened_streams: list[MockLineStream] = []
        self.invoke_delay: float = 0.0
        self.release: asyncio.Event | None = None
        self.closed = False

    @property
    def recorded_commands(self) -> list[Command]:
        """Get all commands in the order invoke() started them."""
        return self._recorded_commands.copy()

    def set_response(self, command_type: str, payload: Any) -> None:
        self._responses[command_type] = payload

    def set_failure(self, command_type: str, failure: TransportFailure) -> None:
        self._failures[command_type] = failure

    def set_exception(self, command_type: str, error: BaseException) -> None:
        """Make invoke() raise instead of returning a result."""
        self._exceptions[command_type] = error

    def hold(self) -> asyncio.Event:
        """Block every invoke() until the returned event is set."""
        self.release = asyncio.Event()
        return self.release

    def add_stream(self, lines: list[str] | None = None) -> MockLineStream:
        """Script a successful connection and return its stream."""
        stream = MockLineStream(lines)
        self._connections.append(stream)
        return stream

    def add_connect_failure(self, error: BaseException | None = None) -> None:
        """Script a failed connection attempt."""
        self._connections.append(
            error or TransportFailure("Connection refused", kind=FailureKind.NETWORK)
        )

    async def invoke(self, command: Command) -> CommandResult:
        self._recorded_commands.append(command)
        if self.release is not None:
            await self.release.wait()
        if self.invoke_delay:
            await asyncio.sleep(self.invoke_delay)

        if command.cmd in self._exceptions:
            raise self._exceptions[command.cmd]
        if command.cmd in self._failures:
            return CommandResult.failed(self._failures[command.cmd])
        return CommandResult.success(self._responses.get(command.cmd, {"mock": True}))

    async def open_stream(self, request: StreamRequest) -> MockLineStream:
        self.stream_requests.append(request)
        connection = self._connections.popleft() if self._connections else MockLineStream()
        if isinstance(connection, BaseException):
            raise connection
        self.opened_streams.append(connection)
        return connection

    async def aclose(self) -> None:
        self.closed = True


def create_mock_transport() -> MockTransport:
    """Create a mock transport for testing."""
    return MockTransport()
