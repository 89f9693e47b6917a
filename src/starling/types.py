"""Domain payload types carried by stream events.

Only the fields the router and the CLI need are declared; everything
else the API sends is ignored.
"""

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """An account."""

    model_config = ConfigDict(extra="ignore")

    id: int
    screen_name: str
    name: str | None = None


class Status(BaseModel):
    """A posted status."""

    model_config = ConfigDict(extra="ignore")

    id: int
    text: str
    user: User | None = None
    created_at: str | None = None
    in_reply_to_status_id: int | None = None


class StatusDeletionNotice(BaseModel):
    """Notice that a status was deleted."""

    status_id: int
    user_id: int


class UserList(BaseModel):
    """A curated list of accounts."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    full_name: str | None = None
    slug: str | None = None
    mode: str | None = None
    user: User | None = None


class DirectMessage(BaseModel):
    """A private message between two accounts."""

    model_config = ConfigDict(extra="ignore")

    id: int
    text: str
    sender: User | None = None
    recipient: User | None = None
    created_at: str | None = None
