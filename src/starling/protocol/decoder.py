"""Line decoder for the streaming wire format.

Turns one line of streamed JSON into a StreamEvent. Lines arrive either bare
(single-user streams) or wrapped in a site-stream envelope:

    {"for_user": 12, "message": {"event": "follow", "source": {...}, "target": {...}}}

Messages are recognised by shape, not by an explicit type field:
- {"delete": {"status": {...}}}            -> status deletion
- {"delete": {"direct_message": {...}}}    -> direct message deletion
- {"friends": [...]}                       -> friend list
- {"direct_message": {...}}                -> direct message
- {"event": "<name>", ...}                 -> social graph / list / profile events
- {"text": ..., "user": {...}, ...}        -> status
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from ..errors import DecodeError
from .events import StreamEvent, StreamEventType, parse_event

logger = logging.getLogger(__name__)

# Wire event name -> event type
_WIRE_EVENTS: dict[str, StreamEventType] = {
    "favorite": StreamEventType.FAVORITE,
    "unfavorite": StreamEventType.UNFAVORITE,
    "follow": StreamEventType.FOLLOW,
    "unfollow": StreamEventType.UNFOLLOW,
    "block": StreamEventType.BLOCK,
    "unblock": StreamEventType.UNBLOCK,
    "list_member_added": StreamEventType.LIST_MEMBER_ADDED,
    "list_member_removed": StreamEventType.LIST_MEMBER_REMOVED,
    "list_user_subscribed": StreamEventType.LIST_SUBSCRIBED,
    "list_user_unsubscribed": StreamEventType.LIST_UNSUBSCRIBED,
    "list_created": StreamEventType.LIST_CREATED,
    "list_updated": StreamEventType.LIST_UPDATED,
    "list_destroyed": StreamEventType.LIST_DELETED,
    "user_update": StreamEventType.PROFILE_UPDATE,
}


@runtime_checkable
class EventDecoder(Protocol):
    """Protocol for stream line decoders."""

    def decode(self, line: str) -> StreamEvent:
        """Decode one line.

        Raises:
            DecodeError: If the line is malformed or of an unknown kind
        """
        ...


class JSONEventDecoder:
    """Decoder for the JSON site/user stream format."""

    def decode(self, line: str) -> StreamEvent:
        text = line.strip()
        if not text:
            raise DecodeError("Empty line", line=line)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON: {e}", line=line) from e

        if not isinstance(data, dict):
            raise DecodeError("Expected a JSON object", line=line)

        for_user = None
        if "for_user" in data and "message" in data:
            for_user = data["for_user"]
            data = data["message"]
            if not isinstance(data, dict):
                raise DecodeError("Envelope message is not an object", line=line)

        try:
            fields = self._to_event_fields(data)
        except (KeyError, TypeError) as e:
            raise DecodeError(f"Incomplete message: missing {e}", line=line) from e
        if fields is None:
            raise DecodeError("Unrecognised message kind", line=line)

        fields["for_user"] = for_user
        try:
            return parse_event(fields)
        except ValidationError as e:
            raise DecodeError(f"Invalid {fields['type'].value} payload: {e}", line=line) from e

    def _to_event_fields(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Map a wire message onto canonical event fields, or None if unknown."""
        if "delete" in data:
            deleted = data["delete"]
            if "status" in deleted:
                status = deleted["status"]
                return {
                    "type": StreamEventType.STATUS_DELETION,
                    "notice": {"status_id": status["id"], "user_id": status["user_id"]},
                }
            if "direct_message" in deleted:
                message = deleted["direct_message"]
                return {
                    "type": StreamEventType.DIRECT_MESSAGE_DELETION,
                    "message_id": message["id"],
                    "user_id": message["user_id"],
                }
            return None

        if "friends" in data:
            return {"type": StreamEventType.FRIEND_LIST, "friend_ids": data["friends"]}

        if "direct_message" in data:
            return {"type": StreamEventType.DIRECT_MESSAGE, "message": data["direct_message"]}

        if "event" in data:
            return self._social_event_fields(data)

        if "text" in data and "user" in data:
            return {"type": StreamEventType.STATUS, "status": data}

        return None

    def _social_event_fields(self, data: dict[str, Any]) -> dict[str, Any] | None:
        event_type = _WIRE_EVENTS.get(data["event"])
        if event_type is None:
            logger.debug(f"Unknown stream event: {data['event']!r}")
            return None

        source = data.get("source")
        target = data.get("target")
        target_object = data.get("target_object")

        match event_type:
            case StreamEventType.FAVORITE | StreamEventType.UNFAVORITE:
                return {
                    "type": event_type,
                    "source": source,
                    "target": target,
                    "status": target_object,
                }
            case (
                StreamEventType.FOLLOW
                | StreamEventType.UNFOLLOW
                | StreamEventType.BLOCK
                | StreamEventType.UNBLOCK
            ):
                return {"type": event_type, "source": source, "target": target}
            case StreamEventType.LIST_MEMBER_ADDED | StreamEventType.LIST_MEMBER_REMOVED:
                # The list owner acts on the member
                return {
                    "type": event_type,
                    "user": target,
                    "owner": source,
                    "user_list": target_object,
                }
            case StreamEventType.LIST_SUBSCRIBED | StreamEventType.LIST_UNSUBSCRIBED:
                # The subscriber acts on the owner's list
                return {
                    "type": event_type,
                    "user": source,
                    "owner": target,
                    "user_list": target_object,
                }
            case (
                StreamEventType.LIST_CREATED
                | StreamEventType.LIST_UPDATED
                | StreamEventType.LIST_DELETED
            ):
                return {"type": event_type, "owner": source, "user_list": target_object}
            case StreamEventType.PROFILE_UPDATE:
                return {"type": event_type, "user": source}
        return None
