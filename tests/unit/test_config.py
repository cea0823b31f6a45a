"""Unit tests for server and peer configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from peer.config import IceServerConfig, MediaConfig, PeerConfig
from rendezvous.config import (
    DEFAULT_STATIC_DIR,
    HealthConfig,
    ServerConfig,
    SignalingConfig,
    set_nested,
)

ENV_VARS = [
    "SIGNALING_HOST",
    "SIGNALING_PORT",
    "SIGNALING_ROOM",
    "SIGNALING_URL",
    "STUN_SERVER",
    "TURN_URL",
    "TURN_USERNAME",
    "TURN_PASSWORD",
    "LOG_LEVEL",
    "PEER_RECORD_TO",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_yaml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestSignalingConfig:
    """Test rendezvous server configuration."""

    def test_defaults(self) -> None:
        config = SignalingConfig()

        assert config.server.host == "0.0.0.0"
        assert config.server.port == 3000
        assert config.server.static_dir == DEFAULT_STATIC_DIR
        assert config.health.enabled is True
        assert config.room.name == "always_on_chat_room"
        assert config.log_level == "INFO"

    def test_log_level_normalized(self) -> None:
        assert SignalingConfig(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError, match="log_level must be one of"):
            SignalingConfig(log_level="chatty")

    def test_port_range(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(port=70000)
        assert ServerConfig(port=0).port == 0

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = write_yaml(
            tmp_path,
            """
server:
  host: 127.0.0.1
  port: 4000
  static_dir: null
health:
  enabled: false
room:
  name: lobby
log_level: warning
""",
        )

        config = SignalingConfig.from_yaml(path)

        assert config.server.host == "127.0.0.1"
        assert config.server.port == 4000
        assert config.server.static_dir is None
        assert config.health == HealthConfig(enabled=False)
        assert config.room.name == "lobby"
        assert config.log_level == "WARNING"

    def test_from_yaml_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            SignalingConfig.from_yaml(tmp_path / "missing.yaml")

    def test_empty_yaml_uses_defaults(self, tmp_path: Path) -> None:
        config = SignalingConfig.from_yaml(write_yaml(tmp_path, ""))
        assert config.server.port == 3000

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = write_yaml(tmp_path, "server:\n  port: 4000\n")
        monkeypatch.setenv("SIGNALING_PORT", "5000")
        monkeypatch.setenv("SIGNALING_HOST", "10.0.0.1")
        monkeypatch.setenv("SIGNALING_ROOM", "other")
        monkeypatch.setenv("LOG_LEVEL", "error")

        config = SignalingConfig.from_yaml(path)

        assert config.server.port == 5000
        assert config.server.host == "10.0.0.1"
        assert config.room.name == "other"
        assert config.log_level == "ERROR"

    def test_defaults_when_file_missing(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SIGNALING_PORT", "3100")

        config = SignalingConfig.from_yaml_with_defaults(tmp_path / "missing.yaml")

        assert config.server.port == 3100

    def test_set_nested(self) -> None:
        data: dict = {"server": {"host": "x"}}
        set_nested(data, ("server", "port"), 1)
        set_nested(data, ("room", "name"), "r")
        assert data == {"server": {"host": "x", "port": 1}, "room": {"name": "r"}}


class TestPeerConfig:
    """Test peer client configuration."""

    def test_defaults(self) -> None:
        config = PeerConfig()

        assert config.server_url == "ws://localhost:3000"
        assert [s.urls for s in config.ice_servers] == [
            ["stun:stun.l.google.com:19302"],
            ["stun:stun1.l.google.com:19302"],
        ]
        assert config.media == MediaConfig()
        assert config.rejoin_on_friend_left is True

    def test_server_url_scheme(self) -> None:
        with pytest.raises(ValidationError, match="ws:// or wss://"):
            PeerConfig(server_url="http://localhost:3000")

    def test_ice_server_single_url(self) -> None:
        server = IceServerConfig(urls="stun:example.org:3478")
        assert server.urls == ["stun:example.org:3478"]

    def test_ice_server_rejects_bad_scheme(self) -> None:
        with pytest.raises(ValidationError, match="stun:, turn: or turns:"):
            IceServerConfig(urls=["http://example.org"])

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = write_yaml(
            tmp_path,
            """
server_url: wss://call.example.org
ice_servers:
  - urls: turn:turn.example.org:3478
    username: alice
    credential: secret
media:
  audio_input: /tmp/tone.wav
  audio_format: null
rejoin_on_friend_left: false
""",
        )

        config = PeerConfig.from_yaml(path)

        assert config.server_url == "wss://call.example.org"
        assert config.ice_servers[0].username == "alice"
        assert config.media.audio_input == "/tmp/tone.wav"
        assert config.media.audio_format is None
        assert config.rejoin_on_friend_left is False

    def test_env_turn_server_prepended(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TURN_URL", "turn:relay.example.org:3478")
        monkeypatch.setenv("TURN_USERNAME", "u")
        monkeypatch.setenv("TURN_PASSWORD", "p")
        monkeypatch.setenv("STUN_SERVER", "stun:stun.example.org:3478")

        config = PeerConfig.from_yaml_with_defaults(None)

        urls = [s.urls[0] for s in config.ice_servers]
        assert urls[:2] == ["stun:stun.example.org:3478", "turn:relay.example.org:3478"]
        assert "stun:stun.l.google.com:19302" in urls
        assert config.ice_servers[1].credential == "p"

    def test_incomplete_turn_env_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TURN_URL", "turn:relay.example.org:3478")

        config = PeerConfig.from_yaml_with_defaults(None)

        assert len(config.ice_servers) == 2

    def test_env_server_url_and_recording(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SIGNALING_URL", "ws://10.0.0.2:3000")
        monkeypatch.setenv("PEER_RECORD_TO", str(tmp_path / "remote.wav"))

        config = PeerConfig.from_yaml_with_defaults(tmp_path / "missing.yaml")

        assert config.server_url == "ws://10.0.0.2:3000"
        assert config.media.record_to == tmp_path / "remote.wav"
