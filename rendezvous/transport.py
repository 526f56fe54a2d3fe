# rendezvous/transport.py
# Thin helpers over a websockets connection: open-state query, JSON send, close.
# Also the Outbox: one FIFO queue and one writer task per destination connection.
# The router posts every outbound message to the outbox (posting never waits), so a
# peer whose socket stops draining only delays its own queue, never other peers or rooms.

import asyncio          # For the per-connection writer tasks.
import collections      # For the deque used as each connection's FIFO queue.
import json             # For serializing outbound messages.
import logging          # For logging send failures and (in DEBUG mode) outbound messages.

import websockets       # The WebSocket library; used here for its exceptions and connection states.
from websockets.protocol import State

from rendezvous import config


def is_open(connection):
    """
    Reports whether a connection can currently be sent to.

    Args:
        connection (websockets.asyncio.server.ServerConnection): The connection to inspect.

    Returns:
        bool: True if the connection is in the OPEN state.
    """
    return getattr(connection, "state", None) is State.OPEN


def describe(connection):
    """Short label for log lines: the remote address if the transport exposes one."""
    return getattr(connection, "remote_address", None) or repr(connection)


async def send_json(connection, message):
    """
    Serializes a message dict as JSON and sends it over a connection.
    Sending to a connection that is not open, or that closes during the send,
    is logged and reported through the return value instead of raising.

    Args:
        connection (websockets.asyncio.server.ServerConnection): Destination connection.
        message (dict): The message to send.

    Returns:
        bool: True if the frame was handed to the transport.
    """
    if not is_open(connection):
        # Stale or half-closed peers are discovered here, at send time.
        logging.warning(f"Not sending '{message.get('type')}' to {describe(connection)}: connection is not open.")
        return False
    try:
        # Serialize the dictionary to a JSON formatted string.
        payload = json.dumps(message)
        # Log the outgoing message only if server DEBUG mode is enabled.
        if config.DEBUG:
            logging.info(f"Sending to {describe(connection)}: {payload}")
        # Send the JSON string over the WebSocket connection.
        await connection.send(payload)
        return True
    except websockets.exceptions.ConnectionClosed:
        # Expected when the client disconnects abruptly while we are sending.
        logging.warning(f"Failed to send to {describe(connection)} because connection is closed.")
        return False
    except Exception:
        # Any other failure (serialization, transport bug) is logged with traceback and reported as not sent.
        logging.exception(f"Unexpected error sending JSON to {describe(connection)}")
        return False


async def close_if_open(connection):
    """Closes the connection if it is still open. Safe to call repeatedly."""
    if is_open(connection):
        await connection.close()


class Outbox:
    """
    Per-connection ordered delivery of outbound messages.

    Messages posted for the same connection are sent in posting order by a single
    writer task; writers of different connections run independently of each other.
    A writer exists only while its queue is non-empty.
    """

    def __init__(self):
        # connection -> deque of (message, on_failure) waiting to be sent.
        self._queues = {}
        # connection -> writer task currently draining that connection's queue.
        self._writers = {}

    def post(self, connection, message, on_failure=None):
        """
        Queues a message for a connection and returns immediately.

        Args:
            connection (websockets.asyncio.server.ServerConnection): Destination connection.
            message (dict): The message to send.
            on_failure (callable | None): Called with no arguments if the message could not be sent.
        """
        queue = self._queues.setdefault(connection, collections.deque())
        queue.append((message, on_failure))
        # Start a writer only if none is draining this connection already.
        if connection not in self._writers:
            self._writers[connection] = asyncio.create_task(self._drain(connection))

    async def _drain(self, connection):
        queue = self._queues[connection]
        try:
            while queue:
                message, on_failure = queue.popleft()
                if not await send_json(connection, message) and on_failure is not None:
                    on_failure()
        finally:
            # No await between the empty-queue check and here, so nothing can be posted in between.
            del self._writers[connection]
            if self._queues.get(connection) is queue:
                del self._queues[connection]

    def pending(self, connection):
        """Number of messages still waiting to be sent to a connection."""
        return len(self._queues.get(connection, ()))

    async def flush(self, *connections):
        """
        Waits until the queues of the given connections (all connections if none given) are empty.
        Messages posted while flushing, such as failure replies, are waited for as well.
        """
        while True:
            writers = [
                task for connection, task in self._writers.items()
                if not connections or connection in connections
            ]
            if not writers:
                return
            await asyncio.gather(*writers, return_exceptions=True)

    async def close(self):
        """Cancels all writers and drops undelivered messages (server shutdown)."""
        writers = list(self._writers.values())
        for task in writers:
            task.cancel()
        await asyncio.gather(*writers, return_exceptions=True)
        self._queues.clear()
