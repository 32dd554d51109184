"""
gsitrack Feed Listener

Runs the FastAPI app under uvicorn, either in the foreground (serve) or in a
background thread next to the terminal dashboard (run).
"""

from __future__ import annotations

import logging
import threading
import time

import uvicorn
from fastapi import FastAPI

logger = logging.getLogger(__name__)


class FeedServer:
    """
    uvicorn server driven from a daemon thread.

    Example usage:
        server = FeedServer(app, host="127.0.0.1", port=3000)
        server.start()
        # Keep running...
        server.stop()
    """

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 3000, log_level: str = "warning"):
        self.host = host
        self.port = port
        self._server = uvicorn.Server(
            uvicorn.Config(app, host=host, port=port, log_level=log_level, access_log=False)
        )
        self._thread: threading.Thread | None = None

    def start(self, wait_seconds: float = 5.0) -> None:
        """Start serving and wait briefly for the socket to be bound."""
        if self._thread is not None:
            logger.warning("Feed server is already running")
            return

        self._thread = threading.Thread(target=self._server.run, name="gsitrack-server", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + wait_seconds
        while not self._server.started and self._thread.is_alive() and time.monotonic() < deadline:
            time.sleep(0.05)

        if self._server.started:
            logger.info(f"Listening for game state on http://{self.host}:{self.port}")
        else:
            logger.error(f"Feed server did not start on {self.host}:{self.port}")

    def stop(self) -> None:
        self._server.should_exit = True
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Feed server stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def serve_forever(app: FastAPI, host: str, port: int, log_level: str = "info") -> None:
    """Run the app in the foreground until interrupted."""
    logger.info(f"Starting gsitrack on http://{host}:{port}")
    logger.info("Press Ctrl+C to stop")
    uvicorn.run(app, host=host, port=port, log_level=log_level)
