"""Unit tests for BridgeConfig and environment loading."""

from __future__ import annotations

import pytest

from automation_bridge.config import (
    DEFAULT_PORT,
    BridgeConfig,
    CompletionRule,
    sanitize_port,
)
from automation_bridge.launcher import LaunchMode


class TestDefaults:
    """Tests for default values and clamping."""

    def test_defaults(self) -> None:
        """A bare config targets the local default port."""
        config = BridgeConfig()

        assert config.url == "ws://127.0.0.1:8091"
        assert config.protocols == ["mcp-automation"]
        assert config.max_pending_requests == 25
        assert config.max_queued_requests == 100
        assert config.heartbeat_interval_ms == 10_000
        assert config.completion_rules["save_asset"] == CompletionRule()
        assert config.auto_launch.enabled is False
        assert config.auto_launch.mode == LaunchMode.HEADLESS

    def test_limits_clamped(self) -> None:
        """Out-of-range limits are pulled back into range."""
        config = BridgeConfig(
            port=0,
            heartbeat_interval_ms=-5,
            max_pending_requests=0,
            max_queued_requests=-1,
        )

        assert config.port == DEFAULT_PORT
        assert config.heartbeat_interval_ms == 0
        assert config.max_pending_requests == 1
        assert config.max_queued_requests == 0

    def test_protocols_deduplicated(self) -> None:
        """Blank and repeated protocols are dropped, order kept."""
        config = BridgeConfig(protocols=["b", "a", "b", " ", ""])
        assert config.protocols == ["b", "a"]


class TestSanitizePort:
    """Tests for sanitize_port."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (8092, 8092),
            ("8092", 8092),
            (" 8092 ", 8092),
            (0, None),
            (70000, None),
            ("abc", None),
            ("", None),
            (True, None),
            (None, None),
        ],
    )
    def test_sanitize(self, value, expected) -> None:
        """Only integers in 1..65535 survive."""
        assert sanitize_port(value) == expected


class TestFromEnv:
    """Tests for BridgeConfig.from_env."""

    def test_reads_variables(self) -> None:
        """Connection settings and limits come from the environment."""
        config = BridgeConfig.from_env(
            {
                "AUTOMATION_BRIDGE_HOST": "10.0.0.5",
                "AUTOMATION_BRIDGE_PORT": "9000",
                "AUTOMATION_BRIDGE_CAPABILITY_TOKEN": "secret",
                "AUTOMATION_BRIDGE_MAX_PENDING_REQUESTS": "5",
                "AUTOMATION_BRIDGE_REQUEST_TIMEOUT_MS": "1500",
            }
        )

        assert config.url == "ws://10.0.0.5:9000"
        assert config.capability_token == "secret"
        assert config.max_pending_requests == 5
        assert config.request_timeout_ms == 1500

    def test_invalid_values_ignored(self) -> None:
        """Bad ports and non-integers fall back to defaults."""
        config = BridgeConfig.from_env(
            {
                "AUTOMATION_BRIDGE_PORT": "99999",
                "AUTOMATION_BRIDGE_HEARTBEAT_INTERVAL_MS": "often",
            }
        )

        assert config.port == DEFAULT_PORT
        assert config.heartbeat_interval_ms == 10_000

    @pytest.mark.parametrize("raw,expected", [("false", False), ("0", False), ("yes", True)])
    def test_enabled_flag(self, raw: str, expected: bool) -> None:
        """The enabled flag accepts common spellings."""
        config = BridgeConfig.from_env({"AUTOMATION_BRIDGE_ENABLED": raw})
        assert config.enabled is expected

    def test_env_protocols_keep_default(self) -> None:
        """Protocols from the environment are tried before the default."""
        config = BridgeConfig.from_env({"AUTOMATION_BRIDGE_PROTOCOLS": "custom-a, custom-b"})
        assert config.protocols == ["custom-a", "custom-b", "mcp-automation"]

    def test_overrides_win(self) -> None:
        """Explicit overrides beat environment values."""
        config = BridgeConfig.from_env({"AUTOMATION_BRIDGE_PORT": "9000"}, port=9100)
        assert config.port == 9100

    def test_protocol_override_merges(self) -> None:
        """User protocols come first, then environment, then the default."""
        config = BridgeConfig.from_env(
            {"AUTOMATION_BRIDGE_PROTOCOLS": "from-env"}, protocols=["user"]
        )
        assert config.protocols == ["user", "from-env", "mcp-automation"]

    def test_reads_os_environ(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without an explicit mapping os.environ is used."""
        monkeypatch.setenv("AUTOMATION_BRIDGE_PORT", "9200")
        assert BridgeConfig.from_env().port == 9200
