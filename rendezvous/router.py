# rendezvous/router.py
# Protocol logic of the relay.
# Every inbound frame goes through Router.handle_payload:
#   decode -> dispatch on message model -> handler -> zero or more outbound messages.
# Protocol and routing failures are raised as SignalingError subclasses by the
# handlers and converted here into a single 'error' reply to the sender.
# Disconnects and explicit 'leave' messages share Router.remove_peer.
#
# Registry reads and writes happen under registry.lock. Outbound messages are only
# posted to the Outbox while the lock is held; the actual sends run in the outbox's
# per-connection writers, so the lock is never held across network I/O.

import logging

from rendezvous import config
from rendezvous.errors import ProtocolViolation, RoutingFailure, SignalingError
from rendezvous.messages import JoinMessage, LeaveMessage, RelayMessage, decode_message, join_notice, leave_notice
from rendezvous.transport import Outbox, close_if_open, describe, is_open

INTERNAL_ERROR = "Internal server error."


class Router:
    """
    Applies the signaling protocol to messages received on client connections.

    Args:
        registry (Registry): Shared room/membership state.
        outbox (Outbox | None): Outbound delivery queues; a fresh one is created if omitted.
    """

    def __init__(self, registry, outbox=None):
        self.registry = registry
        self.outbox = outbox if outbox is not None else Outbox()

    # --- Entry points used by the connection handler ---

    async def handle_payload(self, connection, raw):
        """
        Processes one frame received on 'connection'.
        Never raises: failures become an error reply, unexpected ones are also logged with traceback.

        Args:
            connection (websockets.asyncio.server.ServerConnection): The connection the frame arrived on.
            raw (str | bytes): The frame as delivered by the transport.
        """
        try:
            message = decode_message(raw)
            # Log the decoded message only if server DEBUG mode is enabled.
            if config.DEBUG:
                logging.info(f"Received from {describe(connection)}: {message.model_dump()}")
            await self.dispatch(connection, message)
        except SignalingError as e:
            # Malformed input, protocol violations and routing failures: one error reply, no other effect.
            logging.warning(f"Rejected message from {describe(connection)}: {e.message}")
            self.outbox.post(connection, e.to_reply())
        except Exception:
            # Anything else is a bug; contain it to this message so the connection keeps working.
            logging.exception(f"Unexpected error handling message from {describe(connection)}")
            self.outbox.post(connection, SignalingError(INTERNAL_ERROR).to_reply())

    async def handle_disconnect(self, connection):
        """
        Removes the peer bound to a closed connection, if it ever joined a room.

        Args:
            connection (websockets.asyncio.server.ServerConnection): The connection that closed or errored.
        """
        identity = self.registry.identity_of(connection)
        if identity is None:
            # Never joined (or already removed by an explicit leave): nothing to tear down.
            logging.info(f"Connection {describe(connection)} closed without an associated room/peer.")
            await close_if_open(connection)
            return
        await self.remove_peer(connection, identity.room_id, identity.peer_id)

    async def dispatch(self, connection, message):
        if isinstance(message, JoinMessage):
            await self.handle_join(connection, message)
        elif isinstance(message, RelayMessage):
            await self.handle_relay(connection, message)
        elif isinstance(message, LeaveMessage):
            await self.handle_leave(connection, message)
        else:
            # decode_message only produces the models above.
            raise TypeError(f"No handler for message model {type(message).__name__}")

    # --- Handlers ---

    async def handle_join(self, connection, message):
        """
        Adds the sender to the room and introduces it to every existing member, and vice versa.

        Args:
            connection (websockets.asyncio.server.ServerConnection): The joining connection.
            message (JoinMessage): The decoded join request.

        Raises:
            ProtocolViolation: The peer id is taken in this room, or the connection already joined.
        """
        room_id, sender_id = message.roomId, message.senderId
        async with self.registry.lock:
            # Duplicate joins are rejected; the existing connection is never replaced.
            if self.registry.is_member(room_id, sender_id):
                raise ProtocolViolation(f"You have already joined room '{room_id}'.", original_type="join")
            # A connection represents exactly one peer; a second identity would orphan the first.
            bound = self.registry.identity_of(connection)
            if bound is not None:
                raise ProtocolViolation(
                    f"This connection has already joined room '{bound.room_id}' as '{bound.peer_id}'.",
                    original_type="join",
                )

            self.registry.create_room_if_absent(room_id)
            # Introduce the newcomer and the existing members to each other before inserting it,
            # so the newcomer is never told about itself.
            for existing_peer_id, existing_connection in self.registry.members(room_id):
                self.outbox.post(existing_connection, join_notice(room_id, sender_id))
                self.outbox.post(connection, join_notice(room_id, existing_peer_id))

            # Membership and the connection binding are recorded together.
            self.registry.add_member(room_id, sender_id, connection)
            logging.info(
                f"Peer '{sender_id}' joined room '{room_id}'. "
                f"Total peers in room: {self.registry.member_count(room_id)}"
            )

    async def handle_relay(self, connection, message):
        """
        Forwards an offer, answer or candidate unchanged to the peer named by 'receiverId'.
        If the send later fails (stale connection), the sender still gets an error reply.

        Args:
            connection (websockets.asyncio.server.ServerConnection): The sending connection.
            message (RelayMessage): The decoded handshake message.

        Raises:
            ProtocolViolation: 'receiverId' is missing.
            RoutingFailure: The receiver is not in the room or its connection is not open.
        """
        room_id, sender_id, receiver_id = message.roomId, message.senderId, message.receiverId
        if not receiver_id:
            raise ProtocolViolation(
                f"'{message.type}' requires 'receiverId'.", original_type=message.type, receiver_id=sender_id
            )

        unreachable = RoutingFailure(
            f"Target peer '{receiver_id}' not found or not active.", original_type=message.type, receiver_id=sender_id
        )

        async with self.registry.lock:
            target = self.registry.connection_for(room_id, receiver_id)
            if target is None or not is_open(target):
                raise unreachable
            # Posted under the lock so it stays ordered after the join notice that introduced the sender.
            self.outbox.post(
                target,
                message.to_wire(),
                on_failure=lambda: self.outbox.post(connection, unreachable.to_reply()),
            )

        # Log relay only if DEBUG is enabled.
        if config.DEBUG:
            logging.info(f"Relaying '{message.type}' from '{sender_id}' to '{receiver_id}' in room '{room_id}'.")

    async def handle_leave(self, connection, message):
        await self.remove_peer(connection, message.roomId, message.senderId)

    # --- Shared peer removal ---

    async def remove_peer(self, connection, room_id, peer_id):
        """
        Removes 'peer_id' from 'room_id', tells the remaining members, then closes 'connection'.
        Calling it again for the same connection only repeats the (no-op) close.

        Args:
            connection (websockets.asyncio.server.ServerConnection): The connection to close afterwards.
            room_id (str): Room to remove the peer from.
            peer_id (str): Peer to remove.
        """
        async with self.registry.lock:
            if self.registry.remove_member(room_id, peer_id) is None:
                # Reported only in the log: the triggering connection may already be half-closed.
                logging.warning(f"Leave for peer '{peer_id}' in room '{room_id}', but the peer is not a member.")
            else:
                logging.info(
                    f"Peer '{peer_id}' left room '{room_id}'. "
                    f"Remaining peers in room: {self.registry.member_count(room_id)}"
                )
                for _, member_connection in self.registry.members(room_id):
                    self.outbox.post(member_connection, leave_notice(room_id, peer_id))
            # Drops a leftover binding of the triggering connection, never a live one.
            self.registry.forget_connection(connection)

        # Outside the lock: the close handshake waits on this connection only.
        await close_if_open(connection)
