import json

import pytest

from rendezvous.errors import MalformedMessage, UnknownMessageType
from rendezvous.messages import (
    INCOMPLETE_MESSAGE,
    INVALID_JSON,
    JoinMessage,
    LeaveMessage,
    RelayMessage,
    decode_message,
    join_notice,
    leave_notice,
)


def frame(**fields):
    return json.dumps(fields)


def test_decode_join():
    message = decode_message(frame(type="join", roomId="r1", senderId="a"))
    assert isinstance(message, JoinMessage)
    assert (message.roomId, message.senderId) == ("r1", "a")


def test_decode_leave_from_bytes():
    message = decode_message(frame(type="leave", roomId="r1", senderId="a").encode("utf-8"))
    assert isinstance(message, LeaveMessage)


@pytest.mark.parametrize("relay_type", ["offer", "answer", "candidate"])
def test_decode_relay_keeps_opaque_fields(relay_type):
    original = {
        "type": relay_type,
        "roomId": "r1",
        "senderId": "a",
        "receiverId": "b",
        "sdp": "X",
        "candidate": {"sdpMid": "0", "sdpMLineIndex": 0},
        "extra": None,
    }
    message = decode_message(json.dumps(original))

    assert isinstance(message, RelayMessage)
    assert message.to_wire() == original


def test_decode_relay_without_receiver():
    message = decode_message(frame(type="offer", roomId="r1", senderId="a", sdp="X"))
    assert message.receiverId is None


@pytest.mark.parametrize("raw", ["not json", "{", b"\xff\xfe", "[" * 100000 + "]" * 100000])
def test_invalid_json(raw):
    with pytest.raises(MalformedMessage) as excinfo:
        decode_message(raw)
    assert excinfo.value.message == INVALID_JSON


@pytest.mark.parametrize(
    "data",
    [
        [1, 2, 3],
        "join",
        {"roomId": "r1", "senderId": "a"},
        {"type": "join", "senderId": "a"},
        {"type": "join", "roomId": "r1"},
        {"type": "join", "roomId": "", "senderId": "a"},
        {"type": "join", "roomId": "r1", "senderId": 7},
    ],
)
def test_incomplete_message(data):
    with pytest.raises(MalformedMessage) as excinfo:
        decode_message(json.dumps(data))
    assert excinfo.value.message == INCOMPLETE_MESSAGE
    assert excinfo.value.original_type is None


def test_unknown_type():
    with pytest.raises(UnknownMessageType) as excinfo:
        decode_message(frame(type="chat", roomId="r1", senderId="a"))
    assert excinfo.value.original_type == "chat"
    assert "chat" in excinfo.value.message


def test_non_string_receiver_is_malformed():
    with pytest.raises(MalformedMessage) as excinfo:
        decode_message(frame(type="offer", roomId="r1", senderId="a", receiverId=5))
    assert excinfo.value.original_type == "offer"
    assert "receiverId" in excinfo.value.message


def test_notices():
    assert join_notice("r1", "b") == {"type": "join", "roomId": "r1", "senderId": "b"}
    assert leave_notice("r1", "a") == {"type": "leave", "roomId": "r1", "senderId": "a"}


def test_error_reply_shape():
    reply = UnknownMessageType("Unknown message type 'x'.", original_type="x").to_reply()
    assert reply == {
        "type": "error",
        "message": "Unknown message type 'x'.",
        "senderId": "server",
        "originalType": "x",
    }
