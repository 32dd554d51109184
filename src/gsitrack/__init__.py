"""
gsitrack - Live CS:GO Match Tracker

Receives the game client's state integration callbacks, derives round and
bomb events, keeps per-session history and renders the live state.

Usage:
    from gsitrack import SessionStore, TrackerEngine

    tracker = TrackerEngine(SessionStore("data/sessions"))
    tracker.update_state(payload)
    print(tracker.get_current_stats().score_display())
"""

__version__ = "0.1.0"
__author__ = "gsitrack Contributors"


def __getattr__(name):
    """Lazy import so 'import gsitrack' stays cheap."""
    if name == "TrackerEngine":
        from gsitrack.tracker import TrackerEngine
        return TrackerEngine
    elif name == "SessionStore":
        from gsitrack.sessions import SessionStore
        return SessionStore
    elif name == "StateSnapshot":
        from gsitrack.models import StateSnapshot
        return StateSnapshot
    elif name == "decode_payload":
        from gsitrack.feed import decode_payload
        return decode_payload
    raise AttributeError(f"module 'gsitrack' has no attribute '{name}'")


__all__ = [
    "__version__",
    "TrackerEngine",
    "SessionStore",
    "StateSnapshot",
    "decode_payload",
]
