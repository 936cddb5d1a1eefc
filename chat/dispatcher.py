from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from chat.state import ChatState, FriendEntry, TranscriptLine
from common.envelope import Envelope, UnhandledEventKind, create_envelope
from common.events import (
    INBOUND_EVENTS,
    EventKind,
    FriendsFetched,
    InboundEvent,
    MessageSent,
    PresenceNotified,
    parse_event,
)
from common.log import get_logger, log_envelope

logger = get_logger(__name__)

# Type alias for handler functions
EventHandler = Callable[[Any], None]


class EventDispatcher:
    """
    Routes inbound envelopes to the handler registered for their kind.

    The registry must cover every inbound kind; an envelope whose kind is not
    registered is a protocol violation and is raised, never ignored.
    """

    def __init__(self, state: ChatState, handlers: Optional[Dict[EventKind, EventHandler]] = None) -> None:
        self.state = state
        self.handlers: Dict[EventKind, EventHandler] = {
            EventKind.MESSAGE_SENT: self.handle_message_sent,
            EventKind.PRESENCE_NOTIFIED: self.handle_presence_notified,
            EventKind.FRIENDS_FETCHED: self.handle_friends_fetched,
        }
        if handlers:
            self.handlers.update(handlers)

        missing = INBOUND_EVENTS - set(self.handlers)
        if missing:
            raise ValueError(f"No handler for inbound kinds: {sorted(k.value for k in missing)}")

    def dispatch(self, envelope: Envelope) -> InboundEvent:
        """
        Parse the envelope and run its handler.

        Raises:
            UnhandledEventKind: kind outside the registered set
            MalformedEnvelope: payload does not fit the kind
        """
        event = parse_event(envelope)
        handler = self.handlers.get(event.kind)
        if handler is None:
            raise UnhandledEventKind(envelope.kind)

        log_envelope(logger, "debug", "Dispatching", envelope)
        handler(event)
        return event

    # ========================================
    #           INBOUND HANDLERS
    # ========================================

    def handle_message_sent(self, event: MessageSent) -> None:
        self.state.append_message(TranscriptLine(text=event.text, sender=event.sender))

    def handle_presence_notified(self, event: PresenceNotified) -> None:
        if not self.state.update_presence(event.username, event.online):
            logger.debug("Presence for %s ignored, not in roster", event.username)

    def handle_friends_fetched(self, event: FriendsFetched) -> None:
        self.state.replace_roster(FriendEntry(f.username, f.online) for f in event.friends)

    # ========================================
    #           OUTBOUND ENCODING
    # ========================================

    @staticmethod
    def encode_send_message(text: str) -> Envelope:
        if not text:
            raise ValueError("message text must not be empty")
        return create_envelope(EventKind.SEND_MESSAGE.value, {"text": text})
