"""Stream event definitions.

Every line on a streaming connection decodes into exactly one StreamEvent.
StreamEvent is a closed tagged union discriminated on `type`; adding a kind
means adding a StreamEventType member, a variant model, and a HandlerSet
callback.

Events may carry a `for_user` tag. On multiplexed (site) streams the tag names
the subscribed account the event concerns; on single-user streams it is None.

Example (multiplexed follow):
    {
        "type": "follow",
        "for_user": 12,
        "source": {"id": 12, "screen_name": "alice"},
        "target": {"id": 34, "screen_name": "bob"}
    }
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..types import DirectMessage, Status, StatusDeletionNotice, User, UserList

# Subscriber tag on multiplexed streams
SubscriberId = int | str


class StreamEventType(str, Enum):
    """All event kinds a stream can deliver."""

    # Statuses
    STATUS = "status"
    STATUS_DELETION = "status.deletion"

    # Social graph
    FRIEND_LIST = "friend_list"
    FAVORITE = "favorite"
    UNFAVORITE = "unfavorite"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    BLOCK = "block"
    UNBLOCK = "unblock"

    # Lists
    LIST_MEMBER_ADDED = "list.member_added"
    LIST_MEMBER_REMOVED = "list.member_removed"
    LIST_SUBSCRIBED = "list.subscribed"
    LIST_UNSUBSCRIBED = "list.unsubscribed"
    LIST_CREATED = "list.created"
    LIST_UPDATED = "list.updated"
    LIST_DELETED = "list.deleted"

    # Profile
    PROFILE_UPDATE = "profile.update"

    # Direct messages
    DIRECT_MESSAGE = "direct_message"
    DIRECT_MESSAGE_DELETION = "direct_message.deletion"


class BaseStreamEvent(BaseModel):
    """Fields shared by every event variant."""

    model_config = ConfigDict(frozen=True)

    for_user: SubscriberId | None = None

    def is_tagged(self) -> bool:
        """Check if the event names a subscriber (multiplexed stream)."""
        return self.for_user is not None


class StatusEvent(BaseStreamEvent):
    """A status was posted."""

    type: Literal[StreamEventType.STATUS] = StreamEventType.STATUS
    status: Status


class StatusDeletionEvent(BaseStreamEvent):
    """A status was deleted."""

    type: Literal[StreamEventType.STATUS_DELETION] = StreamEventType.STATUS_DELETION
    notice: StatusDeletionNotice


class FriendListEvent(BaseStreamEvent):
    """Friend ids sent when a stream opens."""

    type: Literal[StreamEventType.FRIEND_LIST] = StreamEventType.FRIEND_LIST
    friend_ids: list[int]


class FavoriteEvent(BaseStreamEvent):
    """`source` favorited (or unfavorited) `status`, written by `target`."""

    type: Literal[StreamEventType.FAVORITE, StreamEventType.UNFAVORITE]
    source: User
    target: User
    status: Status


class UserEvent(BaseStreamEvent):
    """`source` followed, unfollowed, blocked or unblocked `target`."""

    type: Literal[
        StreamEventType.FOLLOW,
        StreamEventType.UNFOLLOW,
        StreamEventType.BLOCK,
        StreamEventType.UNBLOCK,
    ]
    source: User
    target: User


class UserListMembershipEvent(BaseStreamEvent):
    """`user` joined or left `user_list` (owned by `owner`) as member or subscriber."""

    type: Literal[
        StreamEventType.LIST_MEMBER_ADDED,
        StreamEventType.LIST_MEMBER_REMOVED,
        StreamEventType.LIST_SUBSCRIBED,
        StreamEventType.LIST_UNSUBSCRIBED,
    ]
    user: User
    owner: User
    user_list: UserList


class UserListEvent(BaseStreamEvent):
    """`owner` created, updated or deleted `user_list`."""

    type: Literal[
        StreamEventType.LIST_CREATED,
        StreamEventType.LIST_UPDATED,
        StreamEventType.LIST_DELETED,
    ]
    owner: User
    user_list: UserList


class ProfileUpdateEvent(BaseStreamEvent):
    """An account changed its profile."""

    type: Literal[StreamEventType.PROFILE_UPDATE] = StreamEventType.PROFILE_UPDATE
    user: User


class DirectMessageEvent(BaseStreamEvent):
    """A direct message was sent or received."""

    type: Literal[StreamEventType.DIRECT_MESSAGE] = StreamEventType.DIRECT_MESSAGE
    message: DirectMessage


class DirectMessageDeletionEvent(BaseStreamEvent):
    """A direct message was deleted."""

    type: Literal[StreamEventType.DIRECT_MESSAGE_DELETION] = (
        StreamEventType.DIRECT_MESSAGE_DELETION
    )
    message_id: int
    user_id: int


StreamEvent = Annotated[
    Union[
        StatusEvent,
        StatusDeletionEvent,
        FriendListEvent,
        FavoriteEvent,
        UserEvent,
        UserListMembershipEvent,
        UserListEvent,
        ProfileUpdateEvent,
        DirectMessageEvent,
        DirectMessageDeletionEvent,
    ],
    Field(discriminator="type"),
]

_stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(data: dict[str, Any]) -> StreamEvent:
    """Validate a canonical event dict into its variant.

    Raises:
        ValueError: If `type` is not a known StreamEventType
        pydantic.ValidationError: If the dict matches no variant
    """
    event_type = data.get("type")
    if not isinstance(event_type, StreamEventType):
        data = {**data, "type": StreamEventType(event_type)}
    return _stream_event_adapter.validate_python(data)
