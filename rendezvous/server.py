# rendezvous/server.py
# This file contains the WebSocket side of the Rendezvous relay.
# Responsibilities include:
# - Accepting client connections and feeding each received frame to the Router in order.
# - Detecting clean and errored disconnects and triggering peer removal exactly once.
# - Setting up the SSL context for Secure WebSockets (WSS) if configured.
# - Creating the Registry at startup and clearing it at shutdown.

import asyncio          # For the event loop and the never-completing Future that keeps the server alive.
import functools        # For binding the router to the per-connection handler.
import logging          # For logging server events, warnings, and errors.
import ssl              # For creating SSL contexts for WSS.

import websockets       # The WebSocket library used for the server implementation.

from rendezvous import config
from rendezvous.registry import Registry
from rendezvous.router import Router
from rendezvous.transport import describe


# --- Main Connection Handler ---
async def connection_handler(websocket, router):
    """
    Handles one client's WebSocket connection lifecycle.
    Frames are processed one at a time, so a client's join/offer/leave sequence keeps its order.
    Whatever ends the loop (clean close, network error, unexpected exception), the peer
    bound to this connection is removed via router.handle_disconnect.

    Args:
        websocket (websockets.asyncio.server.ServerConnection): The client connection.
        router (Router): Shared router (and through it, the shared registry).
    """
    logging.info(f"New client connected from {describe(websocket)}")
    try:
        # --- Message Receiving Loop ---
        # Stops on a clean close; an abnormal close raises ConnectionClosedError.
        async for message in websocket:
            await router.handle_payload(websocket, message)
    except websockets.exceptions.ConnectionClosedOK:
        # Clean close (client called close(), or the relay closed it after a leave).
        logging.info(f"Client {describe(websocket)} disconnected gracefully.")
    except websockets.exceptions.ConnectionClosedError as e:
        # Network failure or protocol error; treated like any other disconnect.
        logging.info(f"Client {describe(websocket)} disconnected with error: {e}")
    except Exception:
        logging.exception(f"An unexpected error occurred handling client {describe(websocket)}")
    finally:
        # --- Cleanup ---
        # Runs however the loop ended; removal is a no-op if the peer already left.
        await router.handle_disconnect(websocket)
        logging.info(f"Connection closed for {describe(websocket)}")


def create_ssl_context():
    """
    Builds a TLS server context from config.CERT_FILE / config.KEY_FILE.
    Returns None (plain WS) if SSL is disabled or the certificate cannot be loaded.
    """
    if not config.ENABLE_SSL:
        return None
    try:
        logging.info(f"Attempting to load SSL cert: {config.CERT_FILE}")
        logging.info(f"Attempting to load SSL key: {config.KEY_FILE}")
        # Create an SSL context configured for a TLS server.
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        # Both files must exist at the configured paths and match each other.
        ssl_context.load_cert_chain(config.CERT_FILE, config.KEY_FILE)
        logging.info("SSL context created successfully. Server will use WSS.")
        return ssl_context
    except FileNotFoundError:
        logging.error(
            f"SSL Error: Certificate or Key file not found (Cert: '{config.CERT_FILE}', Key: '{config.KEY_FILE}'). "
            "Disabling SSL, falling back to WS."
        )
    except (ssl.SSLError, OSError):
        logging.exception("SSL Error: Failed to create SSL context. Disabling SSL, falling back to WS.")
    return None


def serve(router, host, port, ssl_context=None):
    """Returns the websockets server (an async context manager) bound to 'router'."""
    return websockets.serve(
        functools.partial(connection_handler, router=router),
        host,
        port,
        ssl=ssl_context,
        max_size=config.MAX_MESSAGE_SIZE,
    )


# --- Server Startup Function ---
async def start_server(host, port):
    """
    Creates the registry and router and serves clients until the task is cancelled.

    Args:
        host (str): The hostname or IP address to bind the server to (from config).
        port (int): The port number to bind the server to (from config).
    """
    registry = Registry()
    router = Router(registry)
    ssl_context = create_ssl_context()

    effective_protocol = "wss" if ssl_context else "ws"
    logging.info(f"Starting signaling relay on {effective_protocol}://{host}:{port}")
    logging.info(f"Maximum WebSocket message size set to: {config.MAX_MESSAGE_SIZE} bytes")
    logging.info(f"Server Debug Logging: {'ENABLED' if config.DEBUG else 'DISABLED'}")

    try:
        async with serve(router, host, port, ssl_context):
            logging.info(f"Signaling relay is listening and ready for connections on port {port}.")
            await asyncio.Future()  # Runs until cancelled.
    except OSError:
        logging.exception(f"OSError starting server on {host}:{port} - Is the port already in use?")
        raise
    finally:
        logging.info(f"Shutting down; dropping {len(registry)} active room(s).")
        # Stop pending deliveries before dropping the state they refer to.
        await router.outbox.close()
        registry.clear()
