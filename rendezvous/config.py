# rendezvous/config.py
# This file centralizes configuration settings for the Rendezvous signaling relay.
# Every value can be overridden through an environment variable so the same
# code runs unchanged locally, in a container, or behind a TLS-terminating proxy.

import os # Import the 'os' module to read environment variables and build file paths.


def _env_flag(name, default):
    """Reads a boolean environment variable ('1', 'true', 'yes', 'on' are truthy)."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Network Configuration ---

# HOST: The IP address the WebSocket server should listen on.
# - '0.0.0.0': Listen on all available network interfaces.
# - '127.0.0.1' or 'localhost': Listen only on the local machine.
HOST = os.getenv("RELAY_HOST", "0.0.0.0")

# PORT: The TCP port number the WebSocket server should listen on.
PORT = int(os.getenv("PORT", 8080))

# --- SSL Configuration ---
# Settings related to enabling Secure WebSockets (WSS) using TLS/SSL certificates.
# When the relay sits behind a reverse proxy that terminates TLS, leave this disabled.

# CERT_DIR: The directory where SSL certificate files (cert.pem, key.pem) are expected to be located.
CERT_DIR = os.getenv("RELAY_CERT_DIR", os.path.join(os.getcwd(), "certs"))

# CERT_FILE / KEY_FILE: Certificate chain and matching private key, used only if ENABLE_SSL is True.
CERT_FILE = os.path.join(CERT_DIR, "cert.pem")
KEY_FILE = os.path.join(CERT_DIR, "key.pem")

# ENABLE_SSL: Master switch for WSS. If the files above are missing the server falls back to plain WS.
ENABLE_SSL = _env_flag("RELAY_ENABLE_SSL", False)

# --- Message Limits ---

# MAX_MESSAGE_SIZE: Largest accepted WebSocket frame in bytes.
# Session descriptions are the biggest payloads relayed here and stay well below this.
MAX_MESSAGE_SIZE = int(os.getenv("RELAY_MAX_MESSAGE_SIZE", 64 * 1024))

# --- Logging / Debugging Configuration ---

# LOG_LEVEL: Minimum level for the root logger configured in main.py.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# DEBUG: Verbose relay logging.
# - True: log the content of every received and relayed message.
# - False: only lifecycle events, warnings and errors are logged.
DEBUG = _env_flag("RELAY_DEBUG", False)
