"""Tests for the connection watchdog."""

import time

from conftest import build_payload

from gsitrack.monitor import ConnectionMonitor
from gsitrack.tracker import STATUS_LOST


class TestCheckOnce:
    """Tests for a single watchdog evaluation."""

    def test_no_messages_yet(self, tracker, clock):
        monitor = ConnectionMonitor(tracker, timeout_seconds=10, clock=clock)
        clock.advance(60)
        assert monitor.check_once() is False
        assert tracker.get_current_stats().connection_status != STATUS_LOST

    def test_within_timeout(self, tracker, clock):
        monitor = ConnectionMonitor(tracker, timeout_seconds=10, clock=clock)
        tracker.update_state(build_payload())
        clock.advance(9)
        assert monitor.check_once() is False
        assert tracker.get_current_stats().is_connected

    def test_timeout_reports_once(self, tracker, store, clock):
        monitor = ConnectionMonitor(tracker, timeout_seconds=10, clock=clock)
        tracker.update_state(build_payload())
        clock.advance(11)

        assert monitor.check_once() is True
        assert monitor.check_once() is False

        stats = tracker.get_current_stats()
        assert not stats.is_connected
        assert stats.connection_status == STATUS_LOST
        events = [e.event_type for e in store.get_current_session().events]
        assert events.count("ConnectionLost") == 1

    def test_recovers_after_new_message(self, tracker, clock):
        monitor = ConnectionMonitor(tracker, timeout_seconds=10, clock=clock)
        tracker.update_state(build_payload())
        clock.advance(11)
        monitor.check_once()

        tracker.update_state(build_payload())
        assert tracker.get_current_stats().is_connected
        clock.advance(11)
        assert monitor.check_once() is True


class TestBackgroundThread:
    """Tests for start/stop."""

    def test_start_stop(self, tracker, clock):
        monitor = ConnectionMonitor(tracker, timeout_seconds=10, poll_interval=0.01, clock=clock)
        tracker.update_state(build_payload())
        clock.advance(30)

        monitor.start()
        assert monitor.is_running
        deadline = time.monotonic() + 2
        while tracker.get_current_stats().is_connected and time.monotonic() < deadline:
            time.sleep(0.01)
        monitor.stop()

        assert not monitor.is_running
        assert not tracker.get_current_stats().is_connected

    def test_double_start(self, tracker):
        monitor = ConnectionMonitor(tracker, poll_interval=0.01)
        monitor.start()
        monitor.start()
        monitor.stop()
        assert not monitor.is_running
