"""Configuration schema for the peer client.

Defines Pydantic models for the signaling endpoint, ICE servers and local
media devices, loaded from YAML with environment variable overrides.
"""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from rendezvous.config import set_nested


class IceServerConfig(BaseModel):
    """STUN/TURN server entry."""

    urls: list[str] = Field(..., min_length=1, description="stun: or turn: URLs")
    username: str | None = Field(default=None, description="TURN username")
    credential: str | None = Field(default=None, description="TURN password")

    @field_validator("urls", mode="before")
    @classmethod
    def coerce_urls(cls, v: Any) -> Any:
        """Accept a single URL string as well as a list."""
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("urls")
    @classmethod
    def validate_scheme(cls, v: list[str]) -> list[str]:
        """Validate that every URL is a STUN or TURN URL."""
        for url in v:
            if not url.startswith(("stun:", "turn:", "turns:")):
                raise ValueError(f"ICE server URL must start with stun:, turn: or turns:, got '{url}'")
        return v


def default_ice_servers() -> list[IceServerConfig]:
    return [
        IceServerConfig(urls=["stun:stun.l.google.com:19302"]),
        IceServerConfig(urls=["stun:stun1.l.google.com:19302"]),
    ]


class MediaConfig(BaseModel):
    """Local media configuration.

    ``audio_input`` and ``audio_format`` are handed to the media player as-is,
    e.g. ``default`` + ``pulse`` on Linux, ``:0`` + ``avfoundation`` on macOS,
    or a path to an audio file with no format.
    """

    audio_input: str = Field(default="default", description="Audio capture device or file")
    audio_format: str | None = Field(default="pulse", description="Capture format (None for files)")
    audio_options: dict[str, str] = Field(
        default_factory=dict, description="Extra capture options"
    )
    record_to: Path | None = Field(
        default=None,
        description="File receiving the remote audio (None discards it)",
    )


class PeerConfig(BaseModel):
    """Root peer client configuration."""

    server_url: str = Field(
        default="ws://localhost:3000",
        description="Rendezvous server WebSocket URL",
    )
    ice_servers: list[IceServerConfig] = Field(default_factory=default_ice_servers)
    media: MediaConfig = Field(default_factory=MediaConfig)
    rejoin_on_friend_left: bool = Field(
        default=True,
        description="Wait for a new peer after the current one leaves",
    )
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Validate WebSocket URL scheme."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"server_url must start with ws:// or wss://, got '{v}'")
        return v

    @staticmethod
    def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
        """Apply SIGNALING_URL and STUN/TURN environment variables."""
        if server_url := os.getenv("SIGNALING_URL"):
            data["server_url"] = server_url

        ice_servers: list[dict[str, Any]] = []
        if stun := os.getenv("STUN_SERVER"):
            ice_servers.append({"urls": [stun]})

        turn_url = os.getenv("TURN_URL")
        turn_username = os.getenv("TURN_USERNAME")
        turn_password = os.getenv("TURN_PASSWORD")
        if turn_url and turn_username and turn_password:
            ice_servers.append(
                {"urls": [turn_url], "username": turn_username, "credential": turn_password}
            )

        if ice_servers:
            existing = data.get("ice_servers")
            if existing is None:
                existing = [s.model_dump() for s in default_ice_servers()]
            data["ice_servers"] = ice_servers + list(existing)

        if log_level := os.getenv("LOG_LEVEL"):
            data["log_level"] = log_level

        if record_to := os.getenv("PEER_RECORD_TO"):
            set_nested(data, ("media", "record_to"), record_to)

        return data

    @classmethod
    def from_yaml(cls, path: Path) -> "PeerConfig":
        """Load configuration from YAML file with environment variable overrides.

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
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "PeerConfig":
        """Load configuration from YAML or use defaults if file doesn't exist."""
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(cls.apply_env_overrides({}))
