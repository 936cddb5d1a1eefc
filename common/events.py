from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Type, Union

from common.envelope import Envelope, MalformedEnvelope, UnhandledEventKind


class EventKind(str, Enum):
    """Event kinds of the chat wire protocol, both directions."""

    # Server -> client
    MESSAGE_SENT = "message_sent"            # text message fanned out by the server
    PRESENCE_NOTIFIED = "presence_notified"  # a friend went online/offline
    FRIENDS_FETCHED = "friends_fetched"      # full roster, sent after connect

    # Client -> server
    SEND_MESSAGE = "send_message"

    @classmethod
    def from_string(cls, value: str) -> EventKind:
        """Convert string to EventKind, raise UnhandledEventKind if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise UnhandledEventKind(value) from None

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if string is a known event kind."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


INBOUND_EVENTS: Set[EventKind] = {
    EventKind.MESSAGE_SENT,
    EventKind.PRESENCE_NOTIFIED,
    EventKind.FRIENDS_FETCHED,
}


# ========================================
#           TYPED EVENT VARIANTS
# ========================================

def _require(payload: Dict[str, Any], key: str, kind: Type) -> Any:
    value = payload.get(key)
    if not isinstance(value, kind):
        raise MalformedEnvelope(f"'{key}' must be {kind.__name__}, got {value!r}")
    return value


@dataclass(frozen=True)
class Friend:
    username: str
    online: bool

    @classmethod
    def from_dict(cls, data: Any) -> Friend:
        if not isinstance(data, dict):
            raise MalformedEnvelope(f"Friend entry must be an object, got {data!r}")
        return cls(username=_require(data, "username", str), online=_require(data, "online", bool))


@dataclass(frozen=True)
class MessageSent:
    text: str
    sender: Optional[str] = None

    kind = EventKind.MESSAGE_SENT

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> MessageSent:
        sender = payload.get("from")
        return cls(text=_require(payload, "text", str), sender=sender if isinstance(sender, str) else None)


@dataclass(frozen=True)
class PresenceNotified:
    username: str
    online: bool

    kind = EventKind.PRESENCE_NOTIFIED

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> PresenceNotified:
        return cls(username=_require(payload, "username", str), online=_require(payload, "online", bool))


@dataclass(frozen=True)
class FriendsFetched:
    friends: List[Friend]

    kind = EventKind.FRIENDS_FETCHED

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> FriendsFetched:
        raw = payload.get("friends")
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            raise MalformedEnvelope(f"'friends' must be a list, got {raw!r}")
        return cls(friends=[Friend.from_dict(item) for item in raw])


InboundEvent = Union[MessageSent, PresenceNotified, FriendsFetched]

EVENT_TYPES: Dict[EventKind, Type[Any]] = {
    EventKind.MESSAGE_SENT: MessageSent,
    EventKind.PRESENCE_NOTIFIED: PresenceNotified,
    EventKind.FRIENDS_FETCHED: FriendsFetched,
}


def parse_event(envelope: Envelope) -> InboundEvent:
    """
    Turn an inbound envelope into its typed variant.

    Raises:
        UnhandledEventKind: kind is unknown, or is outbound-only
        MalformedEnvelope: kind is known but the payload does not fit it
    """
    kind = EventKind.from_string(envelope.kind)
    event_type = EVENT_TYPES.get(kind)
    if event_type is None:
        raise UnhandledEventKind(envelope.kind)
    return event_type.from_payload(envelope.payload)
