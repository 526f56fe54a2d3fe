# rendezvous/__init__.py
# Rendezvous: a WebSocket signaling relay that introduces peers within a room
# and forwards their handshake messages (offer/answer/candidate) to each other.

__version__ = "1.0.0"
