"""Handler sets and the subscriber table.

A HandlerSet holds one optional callback per stream event kind. The
SubscriberTable maps subscriber ids (None for the implicit global subscriber
of single-user streams) to handler sets and is the only structure shared
between callers and the router task.

The table is copy-on-write: writers build a new mapping under a lock and
swap the reference; readers grab the current reference without locking. A
lookup therefore never waits on a writer and always sees either the old or
the new handler set, never a mix.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any

from .callbacks import Callback, invoke_callback
from .errors import StarlingError
from .protocol.events import StreamEvent, StreamEventType, SubscriberId

logger = logging.getLogger(__name__)

# Key of the implicit subscriber on single-user streams
GLOBAL_SUBSCRIBER = None


@dataclass(frozen=True)
class HandlerSet:
    """Callbacks for stream events. Unset callbacks mean "not interested".

    Every event callback receives the event; on_exception receives the
    StarlingError describing a connection-level failure. Callbacks may be
    plain functions or coroutine functions.

    Usage:
        handlers = HandlerSet(
            on_status=lambda event: print(event.status.text),
            on_follow=handle_follow,
        )
    """

    on_status: Callback | None = None
    on_status_deletion: Callback | None = None
    on_friend_list: Callback | None = None
    on_favorite: Callback | None = None
    on_unfavorite: Callback | None = None
    on_follow: Callback | None = None
    on_unfollow: Callback | None = None
    on_block: Callback | None = None
    on_unblock: Callback | None = None
    on_user_list_member_addition: Callback | None = None
    on_user_list_member_deletion: Callback | None = None
    on_user_list_subscription: Callback | None = None
    on_user_list_unsubscription: Callback | None = None
    on_user_list_creation: Callback | None = None
    on_user_list_update: Callback | None = None
    on_user_list_deletion: Callback | None = None
    on_user_profile_update: Callback | None = None
    on_direct_message: Callback | None = None
    on_direct_message_deletion: Callback | None = None
    on_exception: Callback | None = None

    @classmethod
    def from_listener(cls, listener: Any) -> HandlerSet:
        """Build a handler set from an object exposing on_* methods."""
        callbacks = {}
        for f in fields(cls):
            callback = getattr(listener, f.name, None)
            if callable(callback):
                callbacks[f.name] = callback
        return cls(**callbacks)

    @classmethod
    def for_all(cls, callback: Callback, on_exception: Callback | None = None) -> HandlerSet:
        """Route every event kind to the same callback."""
        callbacks = {f.name: callback for f in fields(cls) if f.name != "on_exception"}
        return cls(on_exception=on_exception, **callbacks)

    def callback_for(self, event_type: StreamEventType) -> Callback | None:
        """Return the callback registered for an event kind, if any."""
        match event_type:
            case StreamEventType.STATUS:
                return self.on_status
            case StreamEventType.STATUS_DELETION:
                return self.on_status_deletion
            case StreamEventType.FRIEND_LIST:
                return self.on_friend_list
            case StreamEventType.FAVORITE:
                return self.on_favorite
            case StreamEventType.UNFAVORITE:
                return self.on_unfavorite
            case StreamEventType.FOLLOW:
                return self.on_follow
            case StreamEventType.UNFOLLOW:
                return self.on_unfollow
            case StreamEventType.BLOCK:
                return self.on_block
            case StreamEventType.UNBLOCK:
                return self.on_unblock
            case StreamEventType.LIST_MEMBER_ADDED:
                return self.on_user_list_member_addition
            case StreamEventType.LIST_MEMBER_REMOVED:
                return self.on_user_list_member_deletion
            case StreamEventType.LIST_SUBSCRIBED:
                return self.on_user_list_subscription
            case StreamEventType.LIST_UNSUBSCRIBED:
                return self.on_user_list_unsubscription
            case StreamEventType.LIST_CREATED:
                return self.on_user_list_creation
            case StreamEventType.LIST_UPDATED:
                return self.on_user_list_update
            case StreamEventType.LIST_DELETED:
                return self.on_user_list_deletion
            case StreamEventType.PROFILE_UPDATE:
                return self.on_user_profile_update
            case StreamEventType.DIRECT_MESSAGE:
                return self.on_direct_message
            case StreamEventType.DIRECT_MESSAGE_DELETION:
                return self.on_direct_message_deletion
        return None

    async def dispatch(self, event: StreamEvent) -> bool:
        """Invoke the callback matching the event's kind.

        Returns:
            True if a callback was registered and invoked
        """
        callback = self.callback_for(event.type)
        if callback is None:
            return False
        await invoke_callback(callback, event)
        return True

    async def notify_exception(self, error: StarlingError) -> bool:
        """Invoke on_exception, if set."""
        if self.on_exception is None:
            return False
        await invoke_callback(self.on_exception, error)
        return True


@dataclass(frozen=True)
class _Entry:
    token: str
    handlers: HandlerSet


@dataclass(frozen=True)
class SubscriptionHandle:
    """Returned by register(); identifies one registration."""

    subscriber_id: SubscriberId | None
    token: str
    _table: SubscriberTable = field(compare=False, repr=False)

    def cancel(self) -> bool:
        """Remove this registration if it is still current."""
        return self._table.remove(self)


class SubscriberTable:
    """Thread-safe map of subscriber id -> HandlerSet."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Mapping[SubscriberId | None, _Entry] = MappingProxyType({})

    def register(
        self, subscriber_id: SubscriberId | None, handlers: HandlerSet
    ) -> SubscriptionHandle:
        """Register (or atomically replace) the handler set for a subscriber.

        Args:
            subscriber_id: Subscriber id, or None for the global subscriber
            handlers: Callbacks to use for this subscriber's events
        """
        entry = _Entry(token=uuid.uuid4().hex, handlers=handlers)
        with self._lock:
            entries = dict(self._entries)
            replaced = subscriber_id in entries
            entries[subscriber_id] = entry
            self._entries = MappingProxyType(entries)
        logger.debug(
            f"{'Replaced' if replaced else 'Registered'} handlers for subscriber {subscriber_id!r}"
        )
        return SubscriptionHandle(subscriber_id=subscriber_id, token=entry.token, _table=self)

    def unregister(self, subscriber_id: SubscriberId | None) -> bool:
        """Remove whatever is registered for a subscriber.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            if subscriber_id not in self._entries:
                return False
            entries = dict(self._entries)
            del entries[subscriber_id]
            self._entries = MappingProxyType(entries)
        logger.debug(f"Unregistered subscriber {subscriber_id!r}")
        return True

    def remove(self, handle: SubscriptionHandle) -> bool:
        """Remove a registration only if it has not been replaced since.

        Returns:
            True if the handle's entry was removed
        """
        with self._lock:
            current = self._entries.get(handle.subscriber_id)
            if current is None or current.token != handle.token:
                return False
            entries = dict(self._entries)
            del entries[handle.subscriber_id]
            self._entries = MappingProxyType(entries)
        logger.debug(f"Removed subscription for subscriber {handle.subscriber_id!r}")
        return True

    def lookup(self, subscriber_id: SubscriberId | None) -> HandlerSet | None:
        """Return the handler set for a subscriber, or None if not registered."""
        entry = self._entries.get(subscriber_id)
        return entry.handlers if entry is not None else None

    def handler_sets(self) -> list[HandlerSet]:
        """Snapshot of every registered handler set."""
        return [entry.handlers for entry in self._entries.values()]

    def subscriber_ids(self) -> list[SubscriberId | None]:
        return list(self._entries)

    def clear(self) -> int:
        """Remove every entry; returns how many were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries = MappingProxyType({})
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._entries
