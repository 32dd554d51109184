"""
Configuration Management for gsitrack

Provides configuration loading from multiple sources:
- Default values
- Configuration files (YAML, TOML, JSON)
- Environment variables
- Command line arguments

Configuration precedence (highest to lowest):
1. Command line arguments
2. Environment variables (GSITRACK_*)
3. Configuration file
4. Default values
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import tomllib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class TrackerConfig:
    """Configuration for the tracker engine and session history."""

    sessions_dir: str = "data/sessions"

    # No feed message for this long marks the connection as lost
    connection_timeout_seconds: float = 10.0
    monitor_poll_interval: float = 1.0


@dataclass
class ServerConfig:
    """Configuration for the feed listener and web dashboard."""

    host: str = "127.0.0.1"
    port: int = 3000

    # Must match the token in the game's gamestate_integration_*.cfg
    auth_token: str | None = None


@dataclass
class DashboardConfig:
    """Configuration for the terminal dashboard."""

    refresh_interval: float = 0.5
    show_events: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    file_max_bytes: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5


@dataclass
class GsiTrackConfig:
    """Main configuration container."""

    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Version of the config format
    config_version: str = "1.0"


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Get the default paths to search for configuration files."""
    paths = []

    # Current directory
    paths.append(Path.cwd() / "gsitrack.yaml")
    paths.append(Path.cwd() / "gsitrack.toml")
    paths.append(Path.cwd() / "gsitrack.json")
    paths.append(Path.cwd() / ".gsitrack.yaml")

    # User home directory
    home = Path.home()
    paths.append(home / ".config" / "gsitrack" / "config.yaml")
    paths.append(home / ".config" / "gsitrack" / "config.toml")
    paths.append(home / ".gsitrack.yaml")

    # XDG config directory
    xdg_config = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))
    paths.append(Path(xdg_config) / "gsitrack" / "config.yaml")

    return paths


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a file, detecting format from extension."""
    if not path.exists():
        return {}

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml_config(path)
    elif suffix == ".toml":
        return load_toml_config(path)
    elif suffix == ".json":
        return load_json_config(path)
    else:
        logger.warning(f"Unknown config file format: {suffix}")
        return {}


ENV_MAPPINGS = {
    "GSITRACK_LOG_LEVEL": ("logging", "level"),
    "GSITRACK_LOG_FILE": ("logging", "file"),
    "GSITRACK_SESSIONS_DIR": ("tracker", "sessions_dir"),
    "GSITRACK_CONNECTION_TIMEOUT": ("tracker", "connection_timeout_seconds"),
    "GSITRACK_HOST": ("server", "host"),
    "GSITRACK_PORT": ("server", "port"),
    "GSITRACK_AUTH_TOKEN": ("server", "auth_token"),
    "GSITRACK_REFRESH_INTERVAL": ("dashboard", "refresh_interval"),
}

# Values read as text even when they look numeric
_TEXT_KEYS = {("server", "auth_token"), ("tracker", "sessions_dir"), ("server", "host")}


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    for env_var, (section, key) in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue
        if section not in config:
            config[section] = {}

        # Type conversion
        if (section, key) in _TEXT_KEYS:
            pass
        elif value.lower() in ("true", "false"):
            value = value.lower() == "true"
        elif value.isdigit():
            value = int(value)
        else:
            try:
                value = float(value)
            except ValueError:
                pass

        config[section][key] = value

    return config


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two configuration dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def dict_to_config(data: dict[str, Any]) -> GsiTrackConfig:
    """Convert a dictionary to GsiTrackConfig. Unknown keys are ignored."""
    config = GsiTrackConfig()

    for section in fields(config):
        values = data.get(section.name)
        if not isinstance(values, dict):
            continue
        target = getattr(config, section.name)
        for key, value in values.items():
            if hasattr(target, key):
                setattr(target, key, value)
            else:
                logger.warning(f"Ignoring unknown config key: {section.name}.{key}")

    if "config_version" in data:
        config.config_version = str(data["config_version"])

    return config


def load_config(config_file: Path | None = None, include_env: bool = True) -> GsiTrackConfig:
    """
    Load configuration from all sources.

    Args:
        config_file: Explicit path to a config file (optional)
        include_env: Whether to include environment variables

    Returns:
        Merged GsiTrackConfig
    """
    config_data: dict[str, Any] = {}

    # Try to find and load a config file
    if config_file:
        config_data = load_config_file(config_file)
        logger.info(f"Loaded config from: {config_file}")
    else:
        for path in get_default_config_paths():
            if path.exists():
                config_data = load_config_file(path)
                logger.info(f"Loaded config from: {path}")
                break

    # Merge environment variables
    if include_env:
        env_config = load_env_config()
        config_data = merge_configs(config_data, env_config)

    return dict_to_config(config_data)


# ============================================================================
# Configuration Saving
# ============================================================================


def save_config(config: GsiTrackConfig, path: Path) -> None:
    """
    Save configuration to a file.

    Args:
        config: Configuration to save
        path: Path to save to (YAML or JSON, detected from extension)
    """
    data = config_to_dict(config)
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    elif suffix == ".json":
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    else:
        raise ValueError(f"Unsupported config format for saving: {suffix}")

    logger.info(f"Saved config to: {path}")


def config_to_dict(config: GsiTrackConfig) -> dict[str, Any]:
    """Convert GsiTrackConfig to a dictionary."""
    return asdict(config)


# ============================================================================
# Logging Setup
# ============================================================================


def configure_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """
    Configure the root logger from LoggingConfig.

    Args:
        config: Logging settings
        verbose: Force DEBUG regardless of the configured level
    """
    level = logging.DEBUG if verbose else getattr(logging, str(config.level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    # replace handlers from an earlier call instead of stacking them
    for handler in [h for h in root.handlers if getattr(h, "_gsitrack", False)]:
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler._gsitrack = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=config.file_max_bytes,
            backupCount=config.file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler._gsitrack = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)


# ============================================================================
# Configuration Templates
# ============================================================================

DEFAULT_CONFIG_YAML = """# gsitrack Configuration

# Tracker and session history
tracker:
  sessions_dir: data/sessions
  connection_timeout_seconds: 10.0
  monitor_poll_interval: 1.0

# Feed listener and web dashboard
server:
  host: 127.0.0.1
  port: 3000
  # auth_token: change-me  # must match the token in gamestate_integration_gsitrack.cfg

# Terminal dashboard
dashboard:
  refresh_interval: 0.5
  show_events: true

# Logging settings
logging:
  level: INFO
  # file: logs/gsitrack.log
"""


def generate_default_config(path: Path) -> None:
    """Generate a default configuration file."""
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    else:
        save_config(GsiTrackConfig(), path)

    logger.info(f"Generated default config at: {path}")
