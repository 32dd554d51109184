"""
Feed Connection Watchdog

The game client posts state updates every few seconds while running. When
they stop arriving the tracker is told the connection was lost. The monitor
lives outside the tracker so the engine never owns a timer.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from gsitrack.tracker import TrackerEngine

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class ConnectionMonitor:
    """
    Polls a tracker and reports feed outages.

    Example usage:
        monitor = ConnectionMonitor(tracker, timeout_seconds=10)
        monitor.start()
        # Keep running...
        monitor.stop()
    """

    def __init__(
        self,
        tracker: TrackerEngine,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = 1.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the monitor.

        Args:
            tracker: Engine whose last message time is checked
            timeout_seconds: Silence after which the connection counts as lost
            poll_interval: Seconds between checks in the background thread
            clock: Time source, overridable for tests
        """
        self.tracker = tracker
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    def check_once(self) -> bool:
        """
        Evaluate the connection a single time.

        Returns:
            True if this check reported a new outage
        """
        stats = self.tracker.get_current_stats()
        if stats.last_message_time is None or not stats.is_connected:
            return False

        silence = (self._clock() - stats.last_message_time).total_seconds()
        if silence <= self.timeout_seconds:
            return False

        logger.info(f"No feed message for {silence:.0f}s")
        self.tracker.on_connection_lost()
        return True

    def start(self) -> None:
        """Start polling in a daemon thread."""
        if self._running:
            logger.warning("Connection monitor is already running")
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="gsitrack-monitor", daemon=True
        )
        self._thread.start()
        logger.debug(f"Connection monitor started (timeout {self.timeout_seconds}s)")

    def stop(self) -> None:
        """Stop polling and wait for the thread to exit."""
        self._running = False
        self._stop_event.set()

        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

        logger.debug("Connection monitor stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            try:
                self.check_once()
            except Exception as e:
                logger.error(f"Error in connection monitor: {e}")

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is active."""
        return self._running
