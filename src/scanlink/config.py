"""Configuration management for the scanlink server."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from scanlink.errors import ConfigError

BASE_URL_ENV = "APP_HOST_URL"


@dataclass
class SessionsConfig:
    """Scan session lifetime configuration."""

    ttl_seconds: float = 300.0  # 0 disables expiry
    sweep_interval: float = 60.0  # seconds


@dataclass
class ConnectionsConfig:
    """WebSocket connection configuration."""

    send_timeout: float = 5.0  # seconds


@dataclass
class Config:
    """Server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    base_url: str = "http://localhost:3000"
    log_level: str = "INFO"
    log_file: str | None = None
    sessions: SessionsConfig = field(default_factory=SessionsConfig)
    connections: ConnectionsConfig = field(default_factory=ConnectionsConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "scanlink" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError:
        return None


def _number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")


def _non_negative(name: str, value: Any) -> float:
    number = _number(name, value)
    if number < 0:
        raise ConfigError(f"{name} must not be negative, got {number}")
    return number


def _positive(name: str, value: Any) -> float:
    number = _number(name, value)
    if number <= 0:
        raise ConfigError(f"{name} must be greater than 0, got {number}")
    return number


def _port(value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"port must be an integer, got {value!r}")
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"port must be an integer, got {value!r}")
    if not 0 <= port <= 65535:
        raise ConfigError(f"port must be between 0 and 65535, got {port}")
    return port


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} must be a mapping, got {type(section).__name__}")
    return section


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from file and environment.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.
        environ: Injectable environment mapping for testing.

    Returns:
        Config object with values from file or defaults.

    Raises:
        ConfigError: If the file is not a mapping, a section is not a
            mapping, or a value is malformed or out of range.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader
    env = os.environ if environ is None else environ

    data = reader(config_path) or {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"{config_path} must contain a mapping, got {type(data).__name__}"
        )

    # Parse sessions config section
    sessions_data = _section(data, "sessions")
    sessions_config = SessionsConfig(
        ttl_seconds=_non_negative(
            "sessions.ttl_seconds",
            sessions_data.get("ttl_seconds", SessionsConfig.ttl_seconds),
        ),
        sweep_interval=_non_negative(
            "sessions.sweep_interval",
            sessions_data.get("sweep_interval", SessionsConfig.sweep_interval),
        ),
    )

    # Parse connections config section
    connections_data = _section(data, "connections")
    connections_config = ConnectionsConfig(
        send_timeout=_positive(
            "connections.send_timeout",
            connections_data.get("send_timeout", ConnectionsConfig.send_timeout),
        ),
    )

    base_url = env.get(BASE_URL_ENV) or data.get("base_url", Config.base_url)

    return Config(
        host=data.get("host", Config.host),
        port=_port(data.get("port", Config.port)),
        base_url=base_url.rstrip("/"),
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        sessions=sessions_config,
        connections=connections_config,
    )
