"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from automation_bridge.config import BridgeConfig


@pytest.fixture
def fast_config() -> BridgeConfig:
    """Config with no hello delay, no heartbeat and short timeouts."""
    return BridgeConfig(
        hello_delay_ms=0,
        heartbeat_interval_ms=0,
        connect_timeout_ms=1000,
        handshake_timeout_ms=1000,
        request_timeout_ms=2000,
    )
