"""Starling client.

Ties the command dispatcher and stream sessions to a single transport:

- submit_async() queues an API call and returns immediately; one of the
  completion callbacks runs later on a dispatcher worker
- start_stream() opens a streaming session whose router delivers events to
  subscribed handler sets
- The typed APIs (client.statuses, client.lists, ...) await a single call

Usage:
    async with create_client(StarlingConfig.load()) as client:
        client.submit_async("statuses.update", {"status": "hi"}, on_success=print)

        session = client.start_stream(
            StreamRequest.site([12, 34]),
            subscriptions={12: HandlerSet(on_status=show)},
        )
        ...
        await client.stop_stream(session)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .callbacks import Callback
from .config import StarlingConfig
from .dispatcher import CommandDispatcher
from .errors import TransportFailure
from .protocol.commands import Command, CommandType, user_params
from .protocol.decoder import EventDecoder
from .protocol.events import SubscriberId
from .stream import SessionState, StreamSession
from .subscribers import GLOBAL_SUBSCRIBER, HandlerSet, SubscriptionHandle
from .transport.base import StreamRequest, Transport
from .transport.http import create_http_transport
from .transport.mock import MockTransport, create_mock_transport
from .types import DirectMessage, Status, User, UserList

logger = logging.getLogger(__name__)


@dataclass
class StatusesAPI:
    """Status operations."""

    _client: StarlingClient

    async def show(self, status_id: int) -> Status:
        payload = await self._client.call(CommandType.STATUS_SHOW, {"id": status_id})
        return Status.model_validate(payload)

    async def update(self, text: str, in_reply_to_status_id: int | None = None) -> Status:
        """Post a status.

        Args:
            text: Status text
            in_reply_to_status_id: Status being replied to, if any
        """
        command = Command.update_status(text, in_reply_to_status_id)
        payload = await self._client.call(command.cmd, command.params)
        return Status.model_validate(payload)

    async def destroy(self, status_id: int) -> Status:
        payload = await self._client.call(CommandType.STATUS_DESTROY, {"id": status_id})
        return Status.model_validate(payload)

    async def home_timeline(self, count: int | None = None) -> list[Status]:
        params = {"count": count} if count else {}
        payload = await self._client.call(CommandType.HOME_TIMELINE, params)
        return [Status.model_validate(item) for item in payload or []]

    async def user_timeline(self, user: int | str, count: int | None = None) -> list[Status]:
        params = user_params(user)
        if count:
            params["count"] = count
        payload = await self._client.call(CommandType.USER_TIMELINE, params)
        return [Status.model_validate(item) for item in payload or []]


@dataclass
class FriendshipsAPI:
    """Follow and unfollow."""

    _client: StarlingClient

    async def create(self, user: int | str) -> User:
        """Follow a user by id or screen name."""
        payload = await self._client.call(CommandType.FRIENDSHIP_CREATE, user_params(user))
        return User.model_validate(payload)

    async def destroy(self, user: int | str) -> User:
        """Unfollow a user by id or screen name."""
        payload = await self._client.call(CommandType.FRIENDSHIP_DESTROY, user_params(user))
        return User.model_validate(payload)


@dataclass
class FavoritesAPI:
    _client: StarlingClient

    async def create(self, status_id: int) -> Status:
        payload = await self._client.call(CommandType.FAVORITE_CREATE, {"id": status_id})
        return Status.model_validate(payload)

    async def destroy(self, status_id: int) -> Status:
        payload = await self._client.call(CommandType.FAVORITE_DESTROY, {"id": status_id})
        return Status.model_validate(payload)


@dataclass
class BlocksAPI:
    _client: StarlingClient

    async def create(self, user: int | str) -> User:
        payload = await self._client.call(CommandType.BLOCK_CREATE, user_params(user))
        return User.model_validate(payload)

    async def destroy(self, user: int | str) -> User:
        payload = await self._client.call(CommandType.BLOCK_DESTROY, user_params(user))
        return User.model_validate(payload)


@dataclass
class DirectMessagesAPI:
    """Direct message operations."""

    _client: StarlingClient

    async def send(self, user: int | str, text: str) -> DirectMessage:
        params = user_params(user)
        params["text"] = text
        payload = await self._client.call(CommandType.DIRECT_MESSAGE_SEND, params)
        return DirectMessage.model_validate(payload)

    async def destroy(self, message_id: int) -> DirectMessage:
        payload = await self._client.call(CommandType.DIRECT_MESSAGE_DESTROY, {"id": message_id})
        return DirectMessage.model_validate(payload)


@dataclass
class ListsAPI:
    """List management operations."""

    _client: StarlingClient

    async def create(
        self, name: str, public: bool = True, description: str | None = None
    ) -> UserList:
        """Create a list owned by the authenticated user.

        Args:
            name: List name
            public: Public or private list
            description: Optional description
        """
        params: dict[str, Any] = {"name": name, "mode": "public" if public else "private"}
        if description:
            params["description"] = description
        payload = await self._client.call(CommandType.LIST_CREATE, params)
        return UserList.model_validate(payload)

    async def update(self, list_id: int, **changes: Any) -> UserList:
        params: dict[str, Any] = {"list_id": list_id, **changes}
        payload = await self._client.call(CommandType.LIST_UPDATE, params)
        return UserList.model_validate(payload)

    async def destroy(self, list_id: int) -> UserList:
        payload = await self._client.call(CommandType.LIST_DESTROY, {"list_id": list_id})
        return UserList.model_validate(payload)

    async def add_member(self, list_id: int, user: int | str) -> UserList:
        params = {"list_id": list_id, **user_params(user)}
        payload = await self._client.call(CommandType.LIST_MEMBER_ADD, params)
        return UserList.model_validate(payload)

    async def remove_member(self, list_id: int, user: int | str) -> UserList:
        params = {"list_id": list_id, **user_params(user)}
        payload = await self._client.call(CommandType.LIST_MEMBER_DELETE, params)
        return UserList.model_validate(payload)

    async def subscribe(self, owner_screen_name: str, list_id: int) -> UserList:
        params = {"owner_screen_name": owner_screen_name, "list_id": list_id}
        payload = await self._client.call(CommandType.LIST_SUBSCRIBE, params)
        return UserList.model_validate(payload)

    async def unsubscribe(self, owner_screen_name: str, list_id: int) -> UserList:
        """Unsubscribe the authenticated user from another user's list."""
        command = Command.unsubscribe_user_list(owner_screen_name, list_id)
        payload = await self._client.call(command.cmd, command.params)
        return UserList.model_validate(payload)


class StarlingClient:
    """Entry point for API calls and stream sessions.

    Owns a CommandDispatcher and every StreamSession it starts; aclose()
    drains the dispatcher, stops the sessions and closes the transport.
    """

    def __init__(
        self,
        config: StarlingConfig | None = None,
        transport: Transport | None = None,
        decoder: EventDecoder | None = None,
        owns_transport: bool = True,
    ) -> None:
        """Initialize the client.

        Args:
            config: Configuration (defaults if None)
            transport: Transport to use (HTTPTransport built from config if None)
            decoder: Stream line decoder (JSONEventDecoder if None)
            owns_transport: Whether aclose() closes the transport
        """
        self.config = (config or StarlingConfig()).validate()
        self._transport = transport or create_http_transport(self.config)
        self._owns_transport = owns_transport
        self._decoder = decoder
        self._dispatcher = CommandDispatcher(self._transport, self.config.async_num_workers)
        self._sessions: dict[str, StreamSession] = {}
        self._closed = False
        self._closing: asyncio.Task[None] | None = None

    @property
    def transport(self) -> Transport:
        """Access the underlying transport."""
        return self._transport

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def sessions(self) -> list[StreamSession]:
        """Sessions started by this client and not yet stopped."""
        return list(self._sessions.values())

    # Typed APIs

    @property
    def statuses(self) -> StatusesAPI:
        return StatusesAPI(_client=self)

    @property
    def friendships(self) -> FriendshipsAPI:
        return FriendshipsAPI(_client=self)

    @property
    def favorites(self) -> FavoritesAPI:
        return FavoritesAPI(_client=self)

    @property
    def blocks(self) -> BlocksAPI:
        return BlocksAPI(_client=self)

    @property
    def direct_messages(self) -> DirectMessagesAPI:
        return DirectMessagesAPI(_client=self)

    @property
    def lists(self) -> ListsAPI:
        return ListsAPI(_client=self)

    # Commands

    def submit_async(
        self,
        operation: str | CommandType | Command,
        params: dict[str, Any] | None = None,
        on_success: Callback | None = None,
        on_failure: Callback | None = None,
    ) -> Command:
        """Queue an API call; returns without waiting for it.

        Args:
            operation: Operation name, CommandType, or a prebuilt Command
            params: Operation parameters (ignored for a prebuilt Command)
            on_success: Called with the response payload
            on_failure: Called with the TransportFailure

        Returns:
            The queued Command (its id correlates the callbacks)

        Raises:
            QueueClosed: If the client has been closed
        """
        command = operation if isinstance(operation, Command) else Command.create(operation, params)
        self._dispatcher.submit(command, on_success=on_success, on_failure=on_failure)
        return command

    async def call(
        self, operation: str | CommandType, params: dict[str, Any] | None = None
    ) -> Any:
        """Run an API call through the dispatcher and wait for its result.

        Raises:
            TransportFailure: If the call failed
            QueueClosed: If the client has been closed
        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def on_success(payload: Any) -> None:
            if not future.done():
                future.set_result(payload)

        def on_failure(failure: TransportFailure) -> None:
            if not future.done():
                future.set_exception(failure)

        self.submit_async(operation, params, on_success=on_success, on_failure=on_failure)
        return await future

    # Streams

    def start_stream(
        self,
        request: StreamRequest,
        handlers: HandlerSet | None = None,
        subscriptions: dict[SubscriberId, HandlerSet] | None = None,
        on_error: Callback | None = None,
        on_state_change: Callable[[SessionState], None] | None = None,
    ) -> StreamSession:
        """Open a stream session and start routing its events.

        Args:
            request: Which stream to open
            handlers: Handler set for the global subscriber (untagged events)
            subscriptions: Handler sets keyed by subscriber id (site streams)
            on_error: Receives decode, routing and connection errors
            on_state_change: Called with each new SessionState

        Returns:
            The started session
        """
        if self._closed:
            raise RuntimeError("Client is closed")
        session: StreamSession | None = None

        def track_state(state: SessionState) -> None:
            # Sessions that close on their own (rejected credentials) drop out too
            if state == SessionState.CLOSED and session is not None:
                self._sessions.pop(session.id, None)
            if on_state_change is not None:
                on_state_change(state)

        session = StreamSession(
            self._transport,
            request,
            self.config,
            decoder=self._decoder,
            on_error=on_error,
            on_state_change=track_state,
        )
        if handlers is not None:
            session.subscribe(GLOBAL_SUBSCRIBER, handlers)
        for subscriber_id, handler_set in (subscriptions or {}).items():
            session.subscribe(subscriber_id, handler_set)
        self._sessions[session.id] = session
        session.start()
        logger.info(f"Started {request.kind.value} stream session {session.id}")
        return session

    def subscribe(
        self,
        session: StreamSession,
        subscriber_id: SubscriberId | None,
        handlers: HandlerSet,
    ) -> SubscriptionHandle:
        """Register handlers on a running session (None = global subscriber)."""
        return session.subscribe(subscriber_id, handlers)

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Remove a registration made through subscribe() or start_stream().

        Returns:
            False if it was already replaced or removed
        """
        return handle.cancel()

    async def stop_stream(self, session: StreamSession) -> None:
        """Stop a session; returns once it is CLOSED."""
        await session.stop()
        self._sessions.pop(session.id, None)
        logger.info(f"Stopped stream session {session.id}")

    # Lifecycle

    async def aclose(self) -> None:
        """Stop all sessions, drain the dispatcher and close the transport.

        Called from a completion handler, the dispatcher drain and transport
        close finish in the background once the handler returns.
        """
        if self._closed:
            if self._closing is not None and not self._dispatcher.in_worker():
                await asyncio.shield(self._closing)
            return
        self._closed = True
        for session in list(self._sessions.values()):
            await self.stop_stream(session)
        self._closing = asyncio.ensure_future(self._finish_close())
        if self._dispatcher.in_worker():
            await self._dispatcher.close()
            return
        await asyncio.shield(self._closing)

    async def _finish_close(self) -> None:
        await self._dispatcher.close()
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> StarlingClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


# Factory functions


def create_client(config: StarlingConfig | None = None) -> StarlingClient:
    """Create a client talking HTTP to the configured endpoints."""
    config = config or StarlingConfig.load()
    return StarlingClient(config=config, transport=create_http_transport(config))


def create_test_client(
    transport: MockTransport | None = None,
    config: StarlingConfig | None = None,
) -> StarlingClient:
    """Create a client for testing.

    Args:
        transport: Pre-configured mock transport (creates new if None)
        config: Configuration (defaults if None)

    Returns:
        StarlingClient with a MockTransport
    """
    return StarlingClient(
        config=config,
        transport=transport or create_mock_transport(),
        owns_transport=transport is None,
    )


__all__ = [
    "StarlingClient",
    "StatusesAPI",
    "FriendshipsAPI",
    "FavoritesAPI",
    "BlocksAPI",
    "DirectMessagesAPI",
    "ListsAPI",
    "create_client",
    "create_test_client",
]
