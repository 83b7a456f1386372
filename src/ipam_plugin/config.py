"""
Configuration for the IPAM plugin.

Dataclass-based settings with validation, loadable from environment
variables. The listening address and the driver are not settings: the
integrator passes them in when starting the plugin.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]

DEFAULT_SPEC_DIR = Path("/etc/docker/plugins")
DEFAULT_SOCKET_DIR = Path("/run/docker/plugins")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: LogLevel = "INFO"
    format: LogFormat = "text"

    # Let uvicorn emit its per-request access lines
    access_log: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        valid_formats = ("text", "json")
        if self.format not in valid_formats:
            raise ValueError(f"Invalid log format: {self.format}. Must be one of {valid_formats}")


@dataclass
class ServerConfig:
    """Where the plugin registers itself for discovery by the daemon."""

    spec_dir: Path = DEFAULT_SPEC_DIR
    socket_dir: Path = DEFAULT_SOCKET_DIR
    socket_gid: int | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.spec_dir, str):
            self.spec_dir = Path(self.spec_dir)
        if isinstance(self.socket_dir, str):
            self.socket_dir = Path(self.socket_dir)
        if self.socket_gid is not None and self.socket_gid < 0:
            raise ValueError("socket_gid cannot be negative")


@dataclass
class Settings:
    """
    Master configuration for the IPAM plugin.

    ``legacy_double_write`` restores the original handler quirk where a
    failing non-release call writes the error envelope followed by a
    ``null`` success body. It is off by default.
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    legacy_double_write: bool = False

    @classmethod
    def from_env(cls, prefix: str = "IPAM_PLUGIN_") -> Settings:
        """
        Load settings from environment variables.

        Example:
            IPAM_PLUGIN_LOG_LEVEL=DEBUG
            IPAM_PLUGIN_SOCKET_GID=999
            IPAM_PLUGIN_LEGACY_DOUBLE_WRITE=true
        """
        logging_kwargs: dict[str, Any] = {}
        server_kwargs: dict[str, Any] = {}

        # Logging settings
        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            logging_kwargs["level"] = level.strip().upper()
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            logging_kwargs["format"] = log_format.strip().lower()
        if (access_log := _env_bool(f"{prefix}ACCESS_LOG")) is not None:
            logging_kwargs["access_log"] = access_log

        # Discovery settings
        if spec_dir := os.getenv(f"{prefix}SPEC_DIR"):
            server_kwargs["spec_dir"] = Path(spec_dir)
        if socket_dir := os.getenv(f"{prefix}SOCKET_DIR"):
            server_kwargs["socket_dir"] = Path(socket_dir)
        if gid := os.getenv(f"{prefix}SOCKET_GID"):
            try:
                server_kwargs["socket_gid"] = int(gid)
            except ValueError as exc:
                raise ConfigError(
                    f"Invalid socket gid: {gid!r}",
                    variable=f"{prefix}SOCKET_GID",
                    cause=exc,
                ) from exc

        settings = cls(
            logging=LoggingConfig(**logging_kwargs),
            server=ServerConfig(**server_kwargs),
        )
        if (double_write := _env_bool(f"{prefix}LEGACY_DOUBLE_WRITE")) is not None:
            settings.legacy_double_write = double_write

        return settings

    def to_dict(self) -> dict[str, Any]:
        return {
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "access_log": self.logging.access_log,
            },
            "server": {
                "spec_dir": str(self.server.spec_dir),
                "socket_dir": str(self.server.socket_dir),
                "socket_gid": self.server.socket_gid,
            },
            "legacy_double_write": self.legacy_double_write,
        }


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean for {name}: {raw!r}", variable=name)


# =============================================================================
# Global Settings & Helpers
# =============================================================================

_global_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it from the environment if needed."""
    global _global_settings
    if _global_settings is None:
        _global_settings = Settings.from_env()
    return _global_settings


def configure(settings: Settings | None = None, **kwargs) -> Settings:
    """
    Configure global settings.

    Args:
        settings: Settings object to use globally
        **kwargs: Override specific top-level settings

    Returns:
        The configured Settings object
    """
    global _global_settings

    if settings is not None:
        _global_settings = settings
    elif _global_settings is None:
        _global_settings = Settings.from_env()

    for key, value in kwargs.items():
        if hasattr(_global_settings, key):
            setattr(_global_settings, key, value)

    return _global_settings


def reset_settings() -> None:
    """Drop the global settings so the next ``get_settings()`` re-reads the environment."""
    global _global_settings
    _global_settings = None


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = [
    "LogLevel",
    "LogFormat",
    "DEFAULT_SPEC_DIR",
    "DEFAULT_SOCKET_DIR",
    "LoggingConfig",
    "ServerConfig",
    "Settings",
    "get_settings",
    "configure",
    "reset_settings",
    "load_env",
]
