"""Configuration schema for the rendezvous server.

Defines Pydantic models for loading and validating server configuration
from YAML files and environment variables.
"""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_STATIC_DIR = Path(__file__).resolve().parent / "static"


def set_nested(data: dict[str, Any], keys: tuple[str, ...], value: Any) -> None:
    """Set ``data[k1][k2]...`` creating intermediate mappings as needed."""
    target = data
    for key in keys[:-1]:
        target = target.setdefault(key, {})
    target[keys[-1]] = value


class ServerConfig(BaseModel):
    """Signaling listener configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(
        default=3000, ge=0, le=65535, description="Bind port (0 = ephemeral port)"
    )
    max_connections: int = Field(default=100, ge=1, description="Maximum concurrent connections")
    static_dir: Path | None = Field(
        default=DEFAULT_STATIC_DIR,
        description="Directory served to plain HTTP GET requests (None disables)",
    )


class HealthConfig(BaseModel):
    """HTTP health check server configuration."""

    enabled: bool = Field(default=True, description="Start the health check server")
    host: str = Field(default="127.0.0.1", description="Bind host address")
    port: int = Field(default=3001, ge=0, le=65535, description="Bind port")


class RoomConfig(BaseModel):
    """Room configuration."""

    name: str = Field(
        default="always_on_chat_room",
        min_length=1,
        description="Room every join is admitted into",
    )


class SignalingConfig(BaseModel):
    """Root rendezvous server configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    room: RoomConfig = Field(default_factory=RoomConfig)

    # Operational settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    graceful_shutdown_timeout_s: int = Field(
        default=5,
        ge=1,
        description="Graceful shutdown timeout in seconds",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the level is a standard logging level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @staticmethod
    def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
        """Apply SIGNALING_* environment variables on top of file data."""
        if host := os.getenv("SIGNALING_HOST"):
            set_nested(data, ("server", "host"), host)

        if port := os.getenv("SIGNALING_PORT"):
            set_nested(data, ("server", "port"), int(port))

        if room := os.getenv("SIGNALING_ROOM"):
            set_nested(data, ("room", "name"), room)

        if log_level := os.getenv("LOG_LEVEL"):
            data["log_level"] = log_level

        return data

    @classmethod
    def from_yaml(cls, path: Path) -> "SignalingConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.model_validate(cls.apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "SignalingConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Environment overrides apply in both cases.
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(cls.apply_env_overrides({}))
