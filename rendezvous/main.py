# rendezvous/main.py
# Entry point for starting the Rendezvous signaling relay.
# Sets up logging, reads the configuration, and runs the asynchronous server
# defined in rendezvous/server.py until interrupted.

import asyncio
import logging

from rendezvous import config
from rendezvous.server import start_server


def main():
    # Configure logging once for the whole process.
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')
    logging.info("Attempting to start signaling relay...")
    try:
        logging.info(f"Using HOST={config.HOST}, PORT={config.PORT}")
        asyncio.run(start_server(config.HOST, config.PORT))
    except KeyboardInterrupt:
        logging.info("Server stopped manually via KeyboardInterrupt.")
    except Exception:
        logging.exception("Server failed to start or crashed.")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
