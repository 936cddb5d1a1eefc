from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict
import json


class ChatError(Exception):
    """Base class for every error raised by the chat client."""
    pass


class ProtocolViolation(ChatError):
    """Raised when an inbound frame breaks the wire contract."""
    pass


class MalformedEnvelope(ProtocolViolation):
    """Raised when a frame is not a well-formed {type, payload} envelope."""
    pass


class UnhandledEventKind(ProtocolViolation):
    """Raised when an envelope carries a kind outside the known set."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unhandled event kind: {kind!r}")
        self.kind = kind


@dataclass
class Envelope:
    """
    Unit of wire communication in both directions:
    {
    "type":    "STRING",
    "payload": { ... }
    }

    `kind` is the Python-side name of the wire `type` field. Whether the kind
    is known is decided by the dispatcher, not here.
    """
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, json_str: str) -> 'Envelope':
        """Parse JSON string into Envelope, validating structure"""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise MalformedEnvelope(f"Invalid JSON: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> 'Envelope':
        """Create Envelope from dictionary, validating required fields"""
        if not isinstance(data, dict):
            raise MalformedEnvelope("Envelope must be a JSON object")
        if 'type' not in data:
            raise MalformedEnvelope("Missing required field: 'type'")
        if not isinstance(data['type'], str):
            raise MalformedEnvelope("'type' must be a string")

        payload = data.get('payload')
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise MalformedEnvelope("'payload' must be an object")

        return cls(kind=data['type'], payload=payload)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.kind, 'payload': self.payload}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'), sort_keys=True)


def create_envelope(kind: str, payload: Dict[str, Any]) -> Envelope:
    """Helper to build an outbound envelope"""
    return Envelope(kind=kind, payload=dict(payload))
