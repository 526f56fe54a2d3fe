# rendezvous/messages.py
# Wire format of the signaling protocol.
# Inbound frames are decoded exactly once, here, into one of three message models
# (join, relay, leave). Handlers downstream only ever see these typed objects.
# Outbound notifications built by the relay itself are plain dicts.

import json
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rendezvous.errors import MalformedMessage, UnknownMessageType

# Opaque handshake types forwarded verbatim to the addressed peer.
RELAY_TYPES = ("offer", "answer", "candidate")

INVALID_JSON = "Invalid JSON message format."
INCOMPLETE_MESSAGE = "Incomplete signaling message (type, senderId, or roomId missing)."


class SignalMessage(BaseModel):
    """Fields every client message carries. Unknown fields are kept, never dropped."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1, description="Message type tag")
    roomId: str = Field(..., min_length=1, description="Room the sender addresses")
    senderId: str = Field(..., min_length=1, description="Peer id claimed by the sender")


class JoinMessage(SignalMessage):
    type: Literal["join"]


class LeaveMessage(SignalMessage):
    type: Literal["leave"]


class RelayMessage(SignalMessage):
    """An offer, answer or ICE candidate addressed to a single peer in the room."""

    type: Literal["offer", "answer", "candidate"]
    receiverId: Optional[str] = Field(default=None, description="Peer id the message is addressed to")

    def to_wire(self):
        """Returns the decoded message with every field, including opaque extras, unchanged."""
        return self.model_dump()


# Closed set of message models; the router handles each of them explicitly.
MESSAGE_MODELS = {
    "join": JoinMessage,
    "leave": LeaveMessage,
    **{relay_type: RelayMessage for relay_type in RELAY_TYPES},
}


def decode_message(raw):
    """
    Decodes one inbound frame into a JoinMessage, RelayMessage or LeaveMessage.

    Args:
        raw (str | bytes): The frame received from the transport.

    Returns:
        SignalMessage: The typed message.

    Raises:
        MalformedMessage: Not UTF-8/JSON, not an object, or missing/empty type, senderId or roomId.
        UnknownMessageType: Well-formed envelope with a type the relay does not know.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedMessage(INVALID_JSON)

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, RecursionError):
        # RecursionError: nesting deeper than the decoder can follow is still undecodable input.
        raise MalformedMessage(INVALID_JSON)

    if not isinstance(data, dict):
        raise MalformedMessage(INCOMPLETE_MESSAGE)

    # Envelope first, so a missing field is reported the same way for every type.
    try:
        envelope = SignalMessage.model_validate(data)
    except ValidationError:
        raise MalformedMessage(INCOMPLETE_MESSAGE)

    model = MESSAGE_MODELS.get(envelope.type)
    if model is None:
        raise UnknownMessageType(f"Unknown message type '{envelope.type}'.", original_type=envelope.type)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        # Only type-specific fields can fail here (e.g. a non-string receiverId).
        fields = ", ".join(str(error["loc"][0]) for error in e.errors() if error["loc"])
        raise MalformedMessage(f"Invalid field(s) in '{envelope.type}' message: {fields}.", original_type=envelope.type)


def join_notice(room_id, peer_id):
    """Tells a client that 'peer_id' is present in (or has just joined) the room."""
    return {"type": "join", "roomId": room_id, "senderId": peer_id}


def leave_notice(room_id, peer_id):
    """Tells a client that 'peer_id' has left the room."""
    return {"type": "leave", "roomId": room_id, "senderId": peer_id}
