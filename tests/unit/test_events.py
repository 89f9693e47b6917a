"""Unit tests for stream events and the JSON line decoder."""

from __future__ import annotations

import json
from typing import Any

import pytest
from pydantic import ValidationError

from starling.errors import DecodeError
from starling.protocol.decoder import EventDecoder, JSONEventDecoder
from starling.protocol.events import (
    DirectMessageDeletionEvent,
    DirectMessageEvent,
    FavoriteEvent,
    FriendListEvent,
    ProfileUpdateEvent,
    StatusDeletionEvent,
    StatusEvent,
    StreamEventType,
    UserEvent,
    UserListEvent,
    UserListMembershipEvent,
    parse_event,
)

ALICE = {"id": 12, "screen_name": "alice", "name": "Alice"}
BOB = {"id": 34, "screen_name": "bob", "name": "Bob"}
STATUS = {"id": 1001, "text": "hello", "user": ALICE, "created_at": "Mon Oct 18 10:00:00 +0000 2010"}
USER_LIST = {"id": 77, "name": "friends", "full_name": "@alice/friends", "slug": "friends", "user": ALICE}


def line(message: dict[str, Any], for_user: int | str | None = None) -> str:
    if for_user is not None:
        message = {"for_user": for_user, "message": message}
    return json.dumps(message)


def social(event: str, source: dict, target: dict, target_object: dict | None = None) -> dict:
    data: dict[str, Any] = {"event": event, "source": source, "target": target}
    if target_object is not None:
        data["target_object"] = target_object
    return data


@pytest.fixture
def decoder() -> JSONEventDecoder:
    return JSONEventDecoder()


# =============================================================================
# parse_event Tests
# =============================================================================


class TestParseEvent:
    """Tests for canonical event dict validation."""

    def test_string_type_selects_variant(self):
        """parse_event() should pick the variant from the type string."""
        event = parse_event({"type": "friend_list", "friend_ids": [1, 2]})

        assert isinstance(event, FriendListEvent)
        assert event.type == StreamEventType.FRIEND_LIST
        assert event.friend_ids == [1, 2]

    def test_unknown_type_raises(self):
        """An unknown type should raise ValueError."""
        with pytest.raises(ValueError):
            parse_event({"type": "nonsense"})

    def test_missing_fields_raise(self):
        """A variant missing required fields should fail validation."""
        with pytest.raises(ValidationError):
            parse_event({"type": "status"})

    def test_events_are_immutable(self):
        """Events should be frozen."""
        event = parse_event({"type": "friend_list", "friend_ids": [1]})

        with pytest.raises(ValidationError):
            event.friend_ids = [2]

    def test_is_tagged(self):
        """is_tagged() should reflect the for_user tag."""
        untagged = parse_event({"type": "friend_list", "friend_ids": []})
        tagged = parse_event({"type": "friend_list", "friend_ids": [], "for_user": 12})

        assert not untagged.is_tagged()
        assert tagged.is_tagged()

    def test_serializes_type_as_string(self):
        """The type should dump as its string value."""
        event = parse_event({"type": "status", "status": STATUS})

        data = event.model_dump(mode="json")
        assert data["type"] == "status"
        assert data["status"]["user"]["screen_name"] == "alice"


# =============================================================================
# JSONEventDecoder Tests
# =============================================================================


class TestDecoderMessageKinds:
    """Each wire shape maps onto its event variant."""

    def test_satisfies_protocol(self, decoder):
        """JSONEventDecoder should satisfy EventDecoder."""
        assert isinstance(decoder, EventDecoder)

    def test_status(self, decoder):
        """A status message should decode to a StatusEvent."""
        event = decoder.decode(line(STATUS))

        assert isinstance(event, StatusEvent)
        assert event.status.id == 1001
        assert event.status.user.screen_name == "alice"
        assert event.for_user is None

    def test_status_ignores_unknown_fields(self, decoder):
        """Extra status fields should be ignored."""
        event = decoder.decode(line({**STATUS, "retweet_count": 3, "geo": None}))

        assert isinstance(event, StatusEvent)

    def test_status_deletion(self, decoder):
        """delete.status should decode to a deletion notice."""
        event = decoder.decode(line({"delete": {"status": {"id": 1001, "user_id": 12}}}))

        assert isinstance(event, StatusDeletionEvent)
        assert event.notice.status_id == 1001
        assert event.notice.user_id == 12

    def test_direct_message_deletion(self, decoder):
        """delete.direct_message should decode to a message deletion."""
        event = decoder.decode(line({"delete": {"direct_message": {"id": 5, "user_id": 12}}}))

        assert isinstance(event, DirectMessageDeletionEvent)
        assert event.message_id == 5

    def test_friend_list(self, decoder):
        """A friends message should decode to a friend list."""
        event = decoder.decode(line({"friends": [34, 56]}))

        assert isinstance(event, FriendListEvent)
        assert event.friend_ids == [34, 56]

    def test_direct_message(self, decoder):
        """A direct_message message should decode to a DirectMessageEvent."""
        message = {"id": 9, "text": "psst", "sender": ALICE, "recipient": BOB}
        event = decoder.decode(line({"direct_message": message}))

        assert isinstance(event, DirectMessageEvent)
        assert event.message.sender.screen_name == "alice"

    @pytest.mark.parametrize(
        "wire, expected",
        [
            ("follow", StreamEventType.FOLLOW),
            ("unfollow", StreamEventType.UNFOLLOW),
            ("block", StreamEventType.BLOCK),
            ("unblock", StreamEventType.UNBLOCK),
        ],
    )
    def test_user_events(self, decoder, wire, expected):
        """follow, unfollow, block and unblock should map to user events."""
        event = decoder.decode(line(social(wire, ALICE, BOB)))

        assert isinstance(event, UserEvent)
        assert event.type == expected
        assert event.source.id == 12
        assert event.target.id == 34

    @pytest.mark.parametrize("wire", ["favorite", "unfavorite"])
    def test_favorite_events(self, decoder, wire):
        """favorite and unfavorite should carry the target status."""
        event = decoder.decode(line(social(wire, BOB, ALICE, STATUS)))

        assert isinstance(event, FavoriteEvent)
        assert event.type.value == wire
        assert event.status.id == 1001

    def test_list_member_added_owner_is_source(self, decoder):
        """For member additions the list owner is the source."""
        event = decoder.decode(line(social("list_member_added", ALICE, BOB, USER_LIST)))

        assert isinstance(event, UserListMembershipEvent)
        assert event.type == StreamEventType.LIST_MEMBER_ADDED
        assert event.owner.screen_name == "alice"
        assert event.user.screen_name == "bob"
        assert event.user_list.id == 77

    def test_list_subscription_subscriber_is_source(self, decoder):
        """For subscriptions the subscriber is the source."""
        event = decoder.decode(line(social("list_user_subscribed", BOB, ALICE, USER_LIST)))

        assert event.type == StreamEventType.LIST_SUBSCRIBED
        assert event.user.screen_name == "bob"
        assert event.owner.screen_name == "alice"

    @pytest.mark.parametrize(
        "wire, expected",
        [
            ("list_created", StreamEventType.LIST_CREATED),
            ("list_updated", StreamEventType.LIST_UPDATED),
            ("list_destroyed", StreamEventType.LIST_DELETED),
        ],
    )
    def test_list_lifecycle_events(self, decoder, wire, expected):
        """List create, update and destroy should map to list events."""
        event = decoder.decode(line(social(wire, ALICE, ALICE, USER_LIST)))

        assert isinstance(event, UserListEvent)
        assert event.type == expected
        assert event.owner.id == 12

    def test_profile_update(self, decoder):
        """user_update should decode to a profile update."""
        event = decoder.decode(line(social("user_update", ALICE, ALICE)))

        assert isinstance(event, ProfileUpdateEvent)
        assert event.user.name == "Alice"


class TestDecoderEnvelope:
    """Site stream envelopes carry the subscriber tag."""

    def test_unwraps_envelope(self, decoder):
        """The for_user envelope should tag the inner event."""
        event = decoder.decode(line(social("follow", ALICE, BOB), for_user=34))

        assert isinstance(event, UserEvent)
        assert event.for_user == 34
        assert event.is_tagged()

    def test_string_subscriber_id(self, decoder):
        """String subscriber ids should be kept as strings."""
        event = decoder.decode(line({"friends": []}, for_user="acct-9"))

        assert event.for_user == "acct-9"

    def test_surrounding_whitespace_ignored(self, decoder):
        """Whitespace around a line should be ignored."""
        event = decoder.decode("  " + line({"friends": [1]}) + "\r\n")

        assert isinstance(event, FriendListEvent)


class TestDecoderErrors:
    """Malformed lines raise DecodeError carrying the line."""

    def test_empty_line(self, decoder):
        """An empty line should raise DecodeError."""
        with pytest.raises(DecodeError, match="Empty line"):
            decoder.decode("   ")

    def test_invalid_json(self, decoder):
        """Invalid JSON should raise DecodeError."""
        with pytest.raises(DecodeError, match="Invalid JSON") as exc_info:
            decoder.decode("{not json")

        assert exc_info.value.line == "{not json"

    def test_not_an_object(self, decoder):
        """A JSON array should raise DecodeError."""
        with pytest.raises(DecodeError, match="Expected a JSON object"):
            decoder.decode("[1, 2, 3]")

    def test_envelope_message_not_object(self, decoder):
        """A non-object envelope message should raise DecodeError."""
        with pytest.raises(DecodeError, match="Envelope"):
            decoder.decode(json.dumps({"for_user": 1, "message": "hi"}))

    def test_unknown_kind(self, decoder):
        """An unrecognised message shape should raise DecodeError."""
        with pytest.raises(DecodeError, match="Unrecognised"):
            decoder.decode(line({"limit": {"track": 10}}))

    def test_unknown_social_event(self, decoder):
        """An unknown event name should raise DecodeError."""
        with pytest.raises(DecodeError, match="Unrecognised"):
            decoder.decode(line(social("retweet", ALICE, BOB)))

    def test_incomplete_deletion(self, decoder):
        """A deletion without ids should raise DecodeError."""
        with pytest.raises(DecodeError, match="Incomplete"):
            decoder.decode(line({"delete": {"status": {"id": 1}}}))

    def test_invalid_payload(self, decoder):
        """A payload failing validation should raise DecodeError."""
        with pytest.raises(DecodeError, match="Invalid status payload"):
            decoder.decode(line({"text": "no id", "user": ALICE}))

    def test_follow_without_target(self, decoder):
        """A follow without a target should raise DecodeError."""
        with pytest.raises(DecodeError):
            decoder.decode(line({"event": "follow", "source": ALICE}))
