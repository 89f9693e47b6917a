"""Command and stream event protocol.

Defines what flows through the two execution paths:
- Commands: caller -> dispatcher -> transport, answered by a CommandResult
- Stream events: transport line -> decoder -> router -> handler set

Key concepts:
- Commands are immutable and carry a unique id for correlation
- Stream events form a closed tagged union discriminated on `type`
- Multiplexed events carry a `for_user` subscriber tag
"""

from .commands import Command, CommandResult, CommandType
from .decoder import EventDecoder, JSONEventDecoder
from .events import (
    BaseStreamEvent,
    DirectMessageDeletionEvent,
    DirectMessageEvent,
    FavoriteEvent,
    FriendListEvent,
    ProfileUpdateEvent,
    StatusDeletionEvent,
    StatusEvent,
    StreamEvent,
    StreamEventType,
    SubscriberId,
    UserEvent,
    UserListEvent,
    UserListMembershipEvent,
    parse_event,
)

__all__ = [
    "Command",
    "CommandResult",
    "CommandType",
    "EventDecoder",
    "JSONEventDecoder",
    "BaseStreamEvent",
    "StreamEvent",
    "StreamEventType",
    "SubscriberId",
    "StatusEvent",
    "StatusDeletionEvent",
    "FriendListEvent",
    "FavoriteEvent",
    "UserEvent",
    "UserListMembershipEvent",
    "UserListEvent",
    "ProfileUpdateEvent",
    "DirectMessageEvent",
    "DirectMessageDeletionEvent",
    "parse_event",
]
