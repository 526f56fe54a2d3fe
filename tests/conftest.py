import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from rendezvous.registry import Registry
from rendezvous.router import Router


class FakeConnection:
    """In-memory stand-in for a websockets ServerConnection."""

    def __init__(self, name, fail_sends=False, stalled=False, send_error=None):
        self.name = name
        self.remote_address = (name, 0)
        self.state = State.OPEN
        self.fail_sends = fail_sends
        # stalled: send() never completes, like a peer whose socket stopped draining.
        self.stalled = stalled
        self.send_error = send_error
        self.sent = []
        self.close_calls = 0

    async def send(self, payload):
        if self.stalled:
            await asyncio.Event().wait()
        if self.send_error is not None:
            raise self.send_error
        if self.fail_sends or self.state is not State.OPEN:
            raise ConnectionClosedError(None, None)
        self.sent.append(json.loads(payload))

    async def close(self):
        self.close_calls += 1
        self.state = State.CLOSED

    def take(self):
        """Returns and clears the messages received so far."""
        sent, self.sent = self.sent, []
        return sent

    def __repr__(self):
        return f"<FakeConnection {self.name}>"


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
async def router(registry):
    router = Router(registry)
    yield router
    # Stalled writers would otherwise outlive the test.
    await router.outbox.close()


@pytest.fixture
def connect():
    def factory(name, **kwargs):
        return FakeConnection(name, **kwargs)
    return factory


@pytest.fixture
def send(router):
    """Feeds a message dict to the router as a JSON frame from 'connection', then waits for all deliveries."""
    async def deliver(connection, **message):
        await router.handle_payload(connection, json.dumps(message))
        await router.outbox.flush()
    return deliver


@pytest.fixture
def send_raw(router):
    """Feeds a raw frame to the router, then waits for all deliveries."""
    async def deliver(connection, raw):
        await router.handle_payload(connection, raw)
        await router.outbox.flush()
    return deliver


@pytest.fixture
def disconnect(router):
    """Reports 'connection' as closed by the transport, then waits for all deliveries."""
    async def closed(connection):
        await router.handle_disconnect(connection)
        await router.outbox.flush()
    return closed


def assert_consistent(registry):
    """Room membership and the connection index describe the same set of peers."""
    bound = registry.bound_connections()
    for room_id in registry.room_ids():
        members = registry.members(room_id)
        assert members, f"room {room_id!r} exists but is empty"
        for peer_id, connection in members:
            assert registry.identity_of(connection) == (room_id, peer_id)
        assert len(members) == sum(1 for c in bound if registry.identity_of(c).room_id == room_id)
    for connection in bound:
        identity = registry.identity_of(connection)
        assert registry.connection_for(identity.room_id, identity.peer_id) is connection


@pytest.fixture
def consistent(registry):
    return lambda: assert_consistent(registry)
