"""
gsitrack Core - application configuration and logging setup.
"""

from gsitrack.core.config import (
    DashboardConfig,
    GsiTrackConfig,
    LoggingConfig,
    ServerConfig,
    TrackerConfig,
    configure_logging,
    load_config,
    save_config,
)

__all__ = [
    "DashboardConfig",
    "GsiTrackConfig",
    "LoggingConfig",
    "ServerConfig",
    "TrackerConfig",
    "configure_logging",
    "load_config",
    "save_config",
]
