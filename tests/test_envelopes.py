"""Unit tests for inbound envelope validation and outbound wire shapes."""

import json

import pytest
from pydantic import ValidationError

from schemas.envelopes import (
    AudioMessage,
    CallSignalMessage,
    ChatBroadcast,
    ChatBroadcastPayload,
    ChatMessage,
    IdMessage,
    IdPayload,
    JoinMessage,
    UserCountMessage,
    UserCountPayload,
    VoiceAnswerMessage,
    VoiceCandidateMessage,
    VoiceOfferMessage,
    VoiceOfferRelay,
    parse_envelope,
)


@pytest.mark.unit
def test_join_envelope():
    envelope = parse_envelope('{"type": "join", "payload": {"roomId": "ABCD"}}')

    assert isinstance(envelope, JoinMessage)
    assert envelope.payload.room_id == "ABCD"


@pytest.mark.unit
def test_chat_envelope_room_id_is_optional():
    with_room = parse_envelope('{"type": "chat", "payload": {"message": "hi", "roomId": "ABCD"}}')
    without_room = parse_envelope('{"type": "chat", "payload": {"message": "hi"}}')

    assert isinstance(with_room, ChatMessage)
    assert with_room.payload.room_id == "ABCD"
    assert without_room.payload.room_id is None


@pytest.mark.unit
def test_audio_envelope():
    raw = json.dumps({
        "type": "audio-message",
        "payload": {"senderId": "x", "roomId": "ABCD", "audio": "data:audio/webm;base64,AAAA"},
    })
    envelope = parse_envelope(raw)

    assert isinstance(envelope, AudioMessage)
    assert envelope.payload.audio.startswith("data:audio/webm")


@pytest.mark.unit
def test_voice_offer_envelope_ignores_target():
    raw = json.dumps({"type": "voice-offer", "offer": {"type": "offer", "sdp": "v=0"}, "targetId": "p2"})
    envelope = parse_envelope(raw)

    assert isinstance(envelope, VoiceOfferMessage)
    assert envelope.offer == {"type": "offer", "sdp": "v=0"}


@pytest.mark.unit
@pytest.mark.parametrize("target_field", ["to", "targetId"])
def test_point_to_point_envelopes_accept_to_and_target_id(target_field):
    answer = parse_envelope(json.dumps({"type": "voice-answer", "answer": {"sdp": "v=0"}, target_field: "peer1"}))
    candidate = parse_envelope(json.dumps({"type": "voice-candidate", "candidate": {"candidate": "c"}, target_field: "peer1"}))

    assert isinstance(answer, VoiceAnswerMessage)
    assert isinstance(candidate, VoiceCandidateMessage)
    assert answer.to == "peer1"
    assert candidate.to == "peer1"


@pytest.mark.unit
@pytest.mark.parametrize(
    "signal_type",
    ["call-offer", "call-accept", "call-reject", "start-group-call", "user-left-call"],
)
def test_call_signal_envelopes_keep_unknown_fields(signal_type):
    envelope = parse_envelope(json.dumps({"type": signal_type, "from": "peer1", "roomId": "ABCD", "video": False}))

    assert isinstance(envelope, CallSignalMessage)
    dumped = envelope.model_dump(by_alias=True, exclude_unset=True)
    assert dumped == {"type": signal_type, "from": "peer1", "roomId": "ABCD", "video": False}


@pytest.mark.unit
def test_call_signal_dump_keeps_null_fields_and_omits_absent_ones():
    envelope = parse_envelope('{"type": "call-offer", "video": null, "meta": {"k": null}}')

    dumped = envelope.model_dump(by_alias=True, exclude_unset=True)
    assert dumped == {"type": "call-offer", "video": None, "meta": {"k": None}}


@pytest.mark.unit
def test_user_left_call_without_room_id():
    envelope = parse_envelope('{"type": "user-left-call", "from": "peer1"}')

    assert envelope.room_id is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        '{"payload": {"roomId": "ABCD"}}',
        '{"type": "dance"}',
        '{"type": "join", "payload": {}}',
        '{"type": "join", "payload": {"roomId": 42}}',
        '{"type": "chat", "payload": {"roomId": "ABCD"}}',
        '{"type": "voice-answer", "answer": {"sdp": "v=0"}}',
        '{"type": "voice-candidate", "to": "peer1"}',
    ],
)
def test_malformed_envelopes_raise_validation_error(raw):
    with pytest.raises(ValidationError):
        parse_envelope(raw)


@pytest.mark.unit
def test_outbound_wire_shapes():
    assert IdMessage(payload=IdPayload(sender_id="p1")).to_wire() == {"type": "id", "payload": {"senderId": "p1"}}
    assert UserCountMessage(payload=UserCountPayload(count=3)).to_wire() == {"type": "userCount", "payload": {"count": 3}}
    assert ChatBroadcast(payload=ChatBroadcastPayload(sender_id="p1", message="hi")).to_wire() == {
        "type": "chat",
        "payload": {"senderId": "p1", "message": "hi"},
    }
    assert VoiceOfferRelay(offer={"sdp": "v=0"}, from_="p1").to_wire() == {
        "type": "voice-offer",
        "offer": {"sdp": "v=0"},
        "from": "p1",
    }
