# rendezvous/errors.py
# Exceptions raised while decoding and routing signaling messages.
# Everything derived from SignalingError is recovered inside the router and
# turned into exactly one 'error' reply to the connection that caused it.

# Identifier used as senderId on every message the relay itself originates.
SERVER_ID = "server"


class SignalingError(Exception):
    """
    Base class for failures that are reported back to the originating client.

    Args:
        message (str): Human-readable description sent in the error reply.
        original_type (str | None): The 'type' of the request that failed, echoed as 'originalType'.
        receiver_id (str | None): Identifier of the peer the error reply is addressed to.
    """

    def __init__(self, message, original_type=None, receiver_id=None):
        super().__init__(message)
        self.message = message
        self.original_type = original_type
        self.receiver_id = receiver_id

    def to_reply(self):
        """Builds the wire-level error message for this failure."""
        reply = {"type": "error", "message": self.message, "senderId": SERVER_ID}
        if self.original_type is not None:
            reply["originalType"] = self.original_type
        if self.receiver_id is not None:
            reply["receiverId"] = self.receiver_id
        return reply


class MalformedMessage(SignalingError):
    """The payload is not JSON, not an object, or lacks type/senderId/roomId."""


class ProtocolViolation(SignalingError):
    """A well-formed message that is invalid for its type (duplicate join, missing receiverId)."""


class UnknownMessageType(ProtocolViolation):
    """The message declares a type the relay does not handle."""


class RoutingFailure(SignalingError):
    """The addressed peer is not in the room or its connection is not open."""


class DuplicateMember(Exception):
    """Raised by the registry when adding a peer id that is already a member of the room."""
