import json

import pytest

from common.envelope import Envelope, MalformedEnvelope, UnhandledEventKind
from common.events import EventKind, Friend, FriendsFetched, PresenceNotified, parse_event


def test_from_json_reads_type_and_payload():
    env = Envelope.from_json('{"type":"message_sent","payload":{"text":"hi"}}')

    assert env.kind == "message_sent"
    assert env.payload == {"text": "hi"}


def test_missing_payload_decodes_as_empty_object():
    assert Envelope.from_json('{"type":"friends_fetched"}').payload == {}


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    '{"payload": {}}',
    '{"type": 7, "payload": {}}',
    '{"type": "message_sent", "payload": [1]}',
])
def test_malformed_frames_are_rejected(raw):
    with pytest.raises(MalformedEnvelope):
        Envelope.from_json(raw)


def test_to_json_uses_wire_field_names():
    env = Envelope("send_message", {"text": "yo"})

    assert json.loads(env.to_json()) == {"type": "send_message", "payload": {"text": "yo"}}


def test_event_kind_from_string():
    assert EventKind.from_string("presence_notified") is EventKind.PRESENCE_NOTIFIED
    assert EventKind.is_valid("ping") is False
    with pytest.raises(UnhandledEventKind):
        EventKind.from_string("ping")


def test_parse_event_builds_typed_variants():
    presence = parse_event(Envelope("presence_notified", {"username": "bob", "online": False}))
    friends = parse_event(Envelope("friends_fetched", {"friends": [{"username": "c", "online": True}]}))

    assert presence == PresenceNotified(username="bob", online=False)
    assert friends == FriendsFetched(friends=[Friend("c", True)])


def test_parse_event_rejects_bad_friend_entries():
    with pytest.raises(MalformedEnvelope):
        parse_event(Envelope("friends_fetched", {"friends": [{"username": "c"}]}))
    with pytest.raises(MalformedEnvelope):
        parse_event(Envelope("friends_fetched", {"friends": "c"}))
