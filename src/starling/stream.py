"""Stream sessions: one long-lived connection, many subscribers.

A StreamSession owns a single router task that reads lines from the
transport, decodes them, and hands each event to the handler set registered
for the event's subscriber tag.

State machine (advanced only by the router task):

    CONNECTING -> OPEN -> (RECONNECTING -> OPEN)* -> CLOSED

- A failed connect, a read failure, end of stream or a stall (nothing read
  within stream_read_timeout) moves to RECONNECTING.
- Reconnects wait retry_interval first; each failed attempt doubles the wait
  up to max_retry_interval; a successful connect resets it.
- AuthorizationError is never retried: the session closes.
- stop() cancels the router task (unblocking any pending read or backoff
  wait) and returns once the session is CLOSED.

Per-line handling never ends the session: decode and routing errors go to
the session's error callback and reading continues.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from .callbacks import Callback, invoke_callback
from .config import StarlingConfig
from .errors import (
    AuthorizationError,
    DecodeError,
    FailureKind,
    RoutingError,
    SessionClosedError,
    StarlingError,
    TransportFailure,
)
from .protocol.decoder import EventDecoder, JSONEventDecoder
from .protocol.events import StreamEvent, SubscriberId
from .subscribers import GLOBAL_SUBSCRIBER, HandlerSet, SubscriberTable, SubscriptionHandle
from .transport.base import LineStream, StreamRequest, Transport

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SessionState(str, Enum):
    """Stream session lifecycle."""

    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


@dataclass
class Backoff:
    """Exponential reconnect delay: seed, doubled per failure, capped."""

    initial: float
    maximum: float
    factor: float = 2.0
    current: float = field(init=False)

    def __post_init__(self) -> None:
        if self.initial <= 0:
            raise ValueError(f"initial backoff must be positive, got {self.initial}")
        if self.maximum < self.initial:
            raise ValueError(f"maximum backoff {self.maximum} is below initial {self.initial}")
        self.current = self.initial

    def reset(self) -> None:
        self.current = self.initial

    def advance(self) -> float:
        """Grow the delay after a failed attempt and return the new value."""
        self.current = min(self.current * self.factor, self.maximum)
        return self.current


class StreamSession:
    """A streaming connection and the router task that drains it.

    Usage:
        session = StreamSession(transport, StreamRequest.site([12, 34]), config)
        session.subscribe(12, HandlerSet(on_status=show))
        session.subscribe(34, HandlerSet(on_follow=greet))
        session.start()
        ...
        await session.stop()
    """

    def __init__(
        self,
        transport: Transport,
        request: StreamRequest,
        config: StarlingConfig | None = None,
        decoder: EventDecoder | None = None,
        on_error: Callback | None = None,
        on_state_change: Callable[[SessionState], None] | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize a session (not yet started).

        Args:
            transport: Transport used to open the stream
            request: Which stream to open
            config: Supplies stream_read_timeout, retry_interval, max_retry_interval
            decoder: Line decoder (JSONEventDecoder if None)
            on_error: Receives every StarlingError the session reports
            on_state_change: Called on every state transition
            sleep: Backoff sleep (injectable for tests)
            clock: Monotonic clock used for last-read timestamps
        """
        config = config or StarlingConfig()
        self.id = f"stream_{uuid.uuid4().hex[:12]}"
        self.request = request
        self._transport = transport
        self._decoder = decoder or JSONEventDecoder()
        self._subscribers = SubscriberTable()
        self._read_timeout = config.stream_read_timeout
        self._backoff = Backoff(config.retry_interval, config.max_retry_interval)
        self._on_error = on_error
        self._on_state_change = on_state_change
        self._sleep = sleep
        self._clock = clock

        self._state = SessionState.CONNECTING
        self._task: asyncio.Task[None] | None = None
        self._stop_requested = False
        self._last_read_at: float | None = None
        self._reconnect_count = 0
        self._events_dispatched = 0

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == SessionState.CLOSED

    @property
    def backoff_delay(self) -> float:
        """Delay the next reconnect attempt will wait."""
        return self._backoff.current

    @property
    def last_read_at(self) -> float | None:
        """Clock reading of the last line received (keep-alives included)."""
        return self._last_read_at

    @property
    def reconnect_count(self) -> int:
        """Successful reconnects since start."""
        return self._reconnect_count

    @property
    def events_dispatched(self) -> int:
        return self._events_dispatched

    @property
    def subscribers(self) -> SubscriberTable:
        return self._subscribers

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self, subscriber_id: SubscriberId | None, handlers: HandlerSet
    ) -> SubscriptionHandle:
        """Register handlers for a subscriber (None = global subscriber).

        Safe while the router is running; replaces any existing registration.

        Raises:
            SessionClosedError: If the session is closed
        """
        if self.is_closed:
            raise SessionClosedError(f"Session {self.id} is closed")
        handle = self._subscribers.register(subscriber_id, handlers)
        # The router sets CLOSED before its final clear(), so a registration
        # racing the close is either cleared or caught here
        if self.is_closed:
            self._subscribers.remove(handle)
            raise SessionClosedError(f"Session {self.id} is closed")
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Remove a registration made through subscribe()."""
        if self.is_closed:
            raise SessionClosedError(f"Session {self.id} is closed")
        return self._subscribers.remove(handle)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the router task. Requires a running event loop.

        Raises:
            SessionClosedError: If the session is closed
            RuntimeError: If the session was already started
        """
        if self.is_closed:
            raise SessionClosedError(f"Session {self.id} is closed")
        if self._task is not None:
            raise RuntimeError(f"Session {self.id} already started")
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"starling-{self.id}")

    async def stop(self) -> None:
        """Close the session. Returns once the session is CLOSED.

        Unblocks a pending read or backoff wait immediately. Idempotent.
        Called from inside one of this session's callbacks, it only
        requests the stop; the router closes at its next suspension point.
        """
        task = self._task
        if task is not None and not task.done():
            # Cancel once; a second request would interrupt the router's cleanup
            if not self._stop_requested:
                self._stop_requested = True
                task.cancel()
            if task is asyncio.current_task():
                return
            await asyncio.wait({task})
        if self._state != SessionState.CLOSED:
            # Never started, or cancelled before its first step
            self._set_state(SessionState.CLOSED)
            self._subscribers.clear()

    async def wait_closed(self) -> None:
        """Wait until the session reaches CLOSED."""
        if self._task is not None:
            await asyncio.wait({self._task})

    # ------------------------------------------------------------------
    # Router task
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        stream: LineStream | None = None
        try:
            stream = await self._connect()
            while stream is not None:
                failure = await self._read(stream)
                await self._close_stream(stream)
                stream = None
                if isinstance(failure, AuthorizationError):
                    await self._report_connection_error(failure)
                    return
                self._set_state(SessionState.RECONNECTING)
                await self._report_connection_error(failure)
                stream = await self._connect()
        finally:
            if stream is not None:
                await self._close_stream(stream)
            self._set_state(SessionState.CLOSED)
            removed = self._subscribers.clear()
            logger.debug(f"Session {self.id} released {removed} subscription(s)")

    async def _connect(self) -> LineStream | None:
        """Open the stream, retrying with backoff.

        Returns:
            The open stream, or None if credentials were rejected
        """
        retry_after: float | None = None
        while True:
            if self._state == SessionState.RECONNECTING:
                delay = max(self._backoff.current, retry_after or 0.0)
                logger.warning(f"Session {self.id} reconnecting in {delay:.1f}s")
                await self._sleep(delay)

            try:
                stream = await self._transport.open_stream(self.request)
            except AuthorizationError as e:
                logger.error(f"Session {self.id} authorization failed: {e}")
                await self._report_connection_error(e)
                return None
            except TransportFailure as e:
                failure = e
            except Exception as e:
                failure = TransportFailure(f"Unexpected connect error: {e}", FailureKind.UNEXPECTED)
            else:
                if self._state == SessionState.RECONNECTING:
                    self._reconnect_count += 1
                self._backoff.reset()
                self._last_read_at = self._clock()
                self._set_state(SessionState.OPEN)
                return stream

            retry_after = failure.retry_after
            if self._state == SessionState.RECONNECTING:
                self._backoff.advance()
            else:
                self._set_state(SessionState.RECONNECTING)
            await self._report_connection_error(failure)

    async def _read(self, stream: LineStream) -> TransportFailure:
        """Route lines until the connection fails; return the failure."""
        while True:
            try:
                line = await asyncio.wait_for(stream.readline(), timeout=self._read_timeout)
            except TimeoutError:
                return TransportFailure(
                    f"No data received for {self._read_timeout}s", kind=FailureKind.STALLED
                )
            except TransportFailure as e:
                return e
            except Exception as e:
                return TransportFailure(f"Unexpected read error: {e}", FailureKind.UNEXPECTED)

            if line is None:
                return TransportFailure("Stream closed by server", kind=FailureKind.STREAM_CLOSED)

            self._last_read_at = self._clock()
            if not line.strip():
                # Keep-alive
                continue
            await self._route(line)

    async def _route(self, line: str) -> None:
        try:
            event: StreamEvent = self._decoder.decode(line)
        except DecodeError as e:
            await self._report_error(e)
            return
        except Exception as e:
            await self._report_error(DecodeError(f"Decoder failed: {e}", line=line))
            return

        subscriber_id = event.for_user
        handlers = self._subscribers.lookup(subscriber_id)
        if handlers is None:
            await self._report_error(RoutingError(subscriber_id, event))
            return

        try:
            await handlers.dispatch(event)
        except Exception:
            logger.exception(f"Handler for {event.type.value} (subscriber {subscriber_id!r}) raised")
        self._events_dispatched += 1

    async def _close_stream(self, stream: LineStream) -> None:
        try:
            await stream.aclose()
        except Exception as e:
            logger.debug(f"Error closing stream for session {self.id}: {e}")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.info(f"Session {self.id}: {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.exception("State change callback raised")

    async def _safe_invoke(self, callback: Callback, error: StarlingError) -> None:
        try:
            await invoke_callback(callback, error)
        except Exception:
            logger.exception("Error callback raised")

    async def _notify(self, handlers: HandlerSet, error: StarlingError) -> bool:
        """Pass an error to a handler set's on_exception; False if it has none."""
        try:
            return await handlers.notify_exception(error)
        except Exception:
            logger.exception("on_exception handler raised")
            return True

    async def _report_error(self, error: StarlingError) -> None:
        """Report a per-line error (decode or routing)."""
        if self._on_error is not None:
            await self._safe_invoke(self._on_error, error)
            return
        global_handlers = self._subscribers.lookup(GLOBAL_SUBSCRIBER)
        if global_handlers is not None and await self._notify(global_handlers, error):
            return
        logger.warning(f"Session {self.id}: {error}")

    async def _report_connection_error(self, error: TransportFailure) -> None:
        """Report a connection-level failure to on_error and every handler set."""
        logger.warning(f"Session {self.id} connection error: {error!r}")
        if self._on_error is not None:
            await self._safe_invoke(self._on_error, error)
        for handlers in self._subscribers.handler_sets():
            await self._notify(handlers, error)

    def __repr__(self) -> str:
        return f"StreamSession(id={self.id!r}, kind={self.request.kind.value!r}, state={self._state.value!r})"

