# rendezvous/registry.py
# In-memory registry of rooms and their members.
# Two relations are kept side by side:
# - rooms:       room id -> {peer id -> connection}, insertion ordered.
# - connections: connection -> Identity(room id, peer id), the reverse index used on disconnect.
# Both are updated together by add_member/remove_member so they never disagree.
# Nothing here sends or awaits; callers hold `lock` around read-then-write sequences.

import asyncio          # For the lock that serializes join/leave sequences.
import logging          # For logging room creation and deletion.
from collections import namedtuple

from rendezvous.errors import DuplicateMember

# The (room, peer) pair a connection represents after a successful join.
Identity = namedtuple("Identity", ["room_id", "peer_id"])


class Registry:
    """
    Owns all room and membership state of the relay.
    Created once at server start and cleared at shutdown; callers never touch the raw maps.
    """

    def __init__(self):
        # ROOMS: room id -> {peer id -> connection}. A room is present only while it has members.
        # Example: {'r1': {'a': <connection of a>, 'b': <connection of b>}}
        self._rooms = {}
        # CONNECTIONS: reverse lookup from a joined connection to its (room id, peer id).
        # Example: {<connection of a>: Identity('r1', 'a'), <connection of b>: Identity('r1', 'b')}
        self._connections = {}
        # Single mutual-exclusion domain for join/leave sequences.
        self.lock = asyncio.Lock()

    # --- Rooms ---

    def create_room_if_absent(self, room_id):
        """
        Creates an empty room unless it already exists.

        Args:
            room_id (str): The room identifier.

        Returns:
            bool: True if the room was created, False if it already existed.
        """
        if room_id in self._rooms:
            return False
        self._rooms[room_id] = {}
        logging.info(f"Room '{room_id}' created.")
        return True

    def room_ids(self):
        return list(self._rooms)

    def member_count(self, room_id):
        return len(self._rooms.get(room_id, ()))

    def __contains__(self, room_id):
        return room_id in self._rooms

    def __len__(self):
        return len(self._rooms)

    # --- Membership ---

    def is_member(self, room_id, peer_id):
        return peer_id in self._rooms.get(room_id, ())

    def members(self, room_id):
        """
        Snapshot of (peer id, connection) pairs of a room in join order.
        An unknown room yields an empty list.
        """
        return list(self._rooms.get(room_id, {}).items())

    def connection_for(self, room_id, peer_id):
        """Connection of 'peer_id' in 'room_id', or None if it is not a member."""
        return self._rooms.get(room_id, {}).get(peer_id)

    def add_member(self, room_id, peer_id, connection):
        """
        Adds a peer to a room and binds its connection to that identity.

        The room is created if needed. Adding a peer id that is already a
        member raises DuplicateMember; the existing entry is never replaced.

        Args:
            room_id (str): The room to join.
            peer_id (str): The peer identifier, unique within the room.
            connection (websockets.asyncio.server.ServerConnection): The peer's connection.
        """
        if self.is_member(room_id, peer_id):
            raise DuplicateMember(f"Peer '{peer_id}' is already a member of room '{room_id}'.")
        self.create_room_if_absent(room_id)
        self._rooms[room_id][peer_id] = connection
        self._connections[connection] = Identity(room_id, peer_id)

    def remove_member(self, room_id, peer_id):
        """
        Removes a peer from a room together with its connection binding.
        The room is deleted in the same call if it is now empty.

        Args:
            room_id (str): The room to remove the peer from.
            peer_id (str): The peer to remove.

        Returns:
            The removed connection, or None if the peer was not a member.
        """
        members = self._rooms.get(room_id)
        if members is None or peer_id not in members:
            return None
        connection = members.pop(peer_id)
        # Drop the reverse entry only if it still points at this membership.
        if self._connections.get(connection) == (room_id, peer_id):
            del self._connections[connection]
        # Rooms never outlive their last member.
        if not members:
            del self._rooms[room_id]
            logging.info(f"Room '{room_id}' is now empty and has been deleted.")
        return connection

    # --- Reverse index ---

    def identity_of(self, connection):
        """Identity bound to 'connection', or None if it never joined (or already left)."""
        return self._connections.get(connection)

    def forget_connection(self, connection):
        """
        Drops the binding of 'connection' unless it still backs a live membership.
        Returns True if a binding was dropped.
        """
        identity = self._connections.get(connection)
        if identity is None:
            return False
        if self.connection_for(*identity) is connection:
            return False
        del self._connections[connection]
        return True

    def bound_connections(self):
        return list(self._connections)

    # --- Lifecycle ---

    def clear(self):
        """Drops all rooms and bindings (server shutdown)."""
        self._rooms.clear()
        self._connections.clear()
