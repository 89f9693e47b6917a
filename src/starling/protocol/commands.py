"""Command definitions for the dispatch layer.

Commands are API invocation requests submitted by callers.
Each command has a unique ID so callers can correlate completion callbacks.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..errors import TransportFailure


class CommandType(str, Enum):
    """API operations with a known endpoint mapping."""

    # Statuses
    STATUS_SHOW = "statuses.show"
    STATUS_UPDATE = "statuses.update"
    STATUS_DESTROY = "statuses.destroy"
    HOME_TIMELINE = "statuses.home_timeline"
    USER_TIMELINE = "statuses.user_timeline"

    # Users
    USER_SHOW = "users.show"

    # Friendships
    FRIENDSHIP_CREATE = "friendships.create"
    FRIENDSHIP_DESTROY = "friendships.destroy"

    # Favorites
    FAVORITE_CREATE = "favorites.create"
    FAVORITE_DESTROY = "favorites.destroy"

    # Blocks
    BLOCK_CREATE = "blocks.create"
    BLOCK_DESTROY = "blocks.destroy"

    # Direct messages
    DIRECT_MESSAGE_SEND = "direct_messages.new"
    DIRECT_MESSAGE_DESTROY = "direct_messages.destroy"

    # Lists
    LIST_CREATE = "lists.create"
    LIST_UPDATE = "lists.update"
    LIST_DESTROY = "lists.destroy"
    LIST_MEMBER_ADD = "lists.members.create"
    LIST_MEMBER_DELETE = "lists.members.destroy"
    LIST_SUBSCRIBE = "lists.subscribers.create"
    LIST_UNSUBSCRIBE = "lists.subscribers.destroy"

    # Account
    VERIFY_CREDENTIALS = "account.verify_credentials"
    RATE_LIMIT_STATUS = "account.rate_limit_status"


class Command(BaseModel):
    """An API call submitted for asynchronous execution.

    Commands are immutable once created. Each command:
    - Has a unique `id` for correlating completion callbacks
    - Has a `cmd` identifying the operation
    - Has optional `params` for operation arguments

    Example:
        {
            "id": "cmd_abc123def456",
            "cmd": "statuses.update",
            "params": {"status": "hello"}
        }
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"cmd_{uuid.uuid4().hex[:12]}")
    cmd: str
    params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        cmd: str | CommandType,
        params: dict[str, Any] | None = None,
        command_id: str | None = None,
    ) -> Command:
        """Factory method for creating commands."""
        return cls(
            id=command_id or f"cmd_{uuid.uuid4().hex[:12]}",
            cmd=cmd.value if isinstance(cmd, CommandType) else cmd,
            params=params or {},
        )

    # Convenience factories for common commands
    @classmethod
    def update_status(cls, status: str, in_reply_to_status_id: int | None = None) -> Command:
        """Create a statuses.update command."""
        params: dict[str, Any] = {"status": status}
        if in_reply_to_status_id is not None:
            params["in_reply_to_status_id"] = in_reply_to_status_id
        return cls.create(CommandType.STATUS_UPDATE, params)

    @classmethod
    def create_friendship(cls, user: int | str) -> Command:
        """Create a friendships.create command (follow a user)."""
        return cls.create(CommandType.FRIENDSHIP_CREATE, user_params(user))

    @classmethod
    def unsubscribe_user_list(cls, owner_screen_name: str, list_id: int) -> Command:
        """Create a lists.subscribers.destroy command."""
        return cls.create(
            CommandType.LIST_UNSUBSCRIBE,
            {"owner_screen_name": owner_screen_name, "list_id": list_id},
        )


def user_params(user: int | str) -> dict[str, Any]:
    """Numeric ids go out as user_id, everything else as screen_name."""
    if isinstance(user, int):
        return {"user_id": user}
    return {"screen_name": user}


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one transport invocation: a payload or a failure."""

    payload: Any = None
    failure: TransportFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, payload: Any) -> CommandResult:
        return cls(payload=payload)

    @classmethod
    def failed(cls, failure: TransportFailure) -> CommandResult:
        return cls(failure=failure)
