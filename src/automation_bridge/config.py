"""Bridge configuration.

Plain dataclasses with defaults, plus ``BridgeConfig.from_env()`` for the
``AUTOMATION_BRIDGE_*`` environment variables. Explicit keyword overrides
always win over the environment.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .launcher import LaunchMode

logger = logging.getLogger(__name__)

ENV_PREFIX = "AUTOMATION_BRIDGE_"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8091
DEFAULT_PROTOCOLS = ("mcp-automation",)
DEFAULT_HEARTBEAT_INTERVAL_MS = 10_000
DEFAULT_MAX_PENDING_REQUESTS = 25
DEFAULT_MAX_QUEUED_REQUESTS = 100
DEFAULT_REQUEST_TIMEOUT_MS = 60_000
DEFAULT_CONNECT_TIMEOUT_MS = 5_000
DEFAULT_HANDSHAKE_TIMEOUT_MS = 5_000
DEFAULT_HELLO_DELAY_MS = 500
DEFAULT_EVENT_TIMEOUT_MS = 30_000
MAX_MESSAGE_SIZE_BYTES = 5 * 1024 * 1024

# Read-only action prefixes whose concurrent duplicates share one round trip
DEFAULT_COALESCE_PREFIXES = ("get_", "list_", "find_", "describe_", "inspect_", "query_")


@dataclass(frozen=True)
class CompletionRule:
    """Per-action contract for requests that finish with a completion event.

    The first response only acknowledges receipt unless its ``result`` carries
    ``done_marker`` set to True.
    """

    done_marker: str = "saved"
    event_timeout_ms: int = DEFAULT_EVENT_TIMEOUT_MS


DEFAULT_COMPLETION_RULES: dict[str, CompletionRule] = {
    "save_asset": CompletionRule(),
    "save_all_dirty_packages": CompletionRule(),
    "save_current_level": CompletionRule(),
}


@dataclass(frozen=True)
class ActionEchoPolicy:
    """Exemptions for the action-echo cross-check."""

    # Echoed identifiers that look like resource paths are not action names
    path_prefixes: tuple[str, ...] = ("/Game/", "/Script/")
    # Umbrella actions that legitimately echo one of their sub-actions
    consolidated_actions: frozenset[str] = frozenset(
        {
            "animation_physics",
            "create_effect",
            "build_environment",
            "system_control",
            "manage_ui",
        }
    )


@dataclass
class AutoLaunchConfig:
    """Self-healing launch settings used when lazy connection fails."""

    project_path: str | None = None
    mode: LaunchMode = LaunchMode.HEADLESS
    enabled: bool = False
    timeout_ms: int = 120_000
    poll_interval_ms: int = 2_000
    editor_path: str | None = None
    additional_args: str | None = None


def sanitize_port(value: Any) -> int | None:
    """Return a valid TCP port from an int or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 < value <= 65535 else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = int(value.strip(), 10)
        except ValueError:
            return None
        return parsed if 0 < parsed <= 65535 else None
    return None


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [token.strip() for token in value.split(",") if token.strip()]


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _env_int(env: Mapping[str, str], name: str) -> int | None:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip(), 10)
    except ValueError:
        logger.warning(f"Ignoring non-integer {ENV_PREFIX}{name}={raw!r}")
        return None


@dataclass
class BridgeConfig:
    """Configuration for an AutomationBridge instance."""

    enabled: bool = True
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    protocols: list[str] = field(default_factory=lambda: list(DEFAULT_PROTOCOLS))
    capability_token: str | None = None

    server_name: str = "automation-bridge"
    server_version: str = "0.6.0"

    heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS
    max_pending_requests: int = DEFAULT_MAX_PENDING_REQUESTS
    max_queued_requests: int = DEFAULT_MAX_QUEUED_REQUESTS
    max_message_size: int = MAX_MESSAGE_SIZE_BYTES

    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    handshake_timeout_ms: int = DEFAULT_HANDSHAKE_TIMEOUT_MS
    hello_delay_ms: int = DEFAULT_HELLO_DELAY_MS

    completion_rules: dict[str, CompletionRule] = field(
        default_factory=lambda: dict(DEFAULT_COMPLETION_RULES)
    )
    coalesce_prefixes: tuple[str, ...] = DEFAULT_COALESCE_PREFIXES
    action_echo: ActionEchoPolicy = field(default_factory=ActionEchoPolicy)
    auto_launch: AutoLaunchConfig = field(default_factory=AutoLaunchConfig)

    def __post_init__(self) -> None:
        self.port = sanitize_port(self.port) or DEFAULT_PORT
        self.heartbeat_interval_ms = max(0, self.heartbeat_interval_ms)
        self.max_pending_requests = max(1, self.max_pending_requests)
        self.max_queued_requests = max(0, self.max_queued_requests)
        # Deduplicate while keeping order
        self.protocols = list(dict.fromkeys(p for p in self.protocols if p and p.strip()))

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> BridgeConfig:
        """Build a config from ``AUTOMATION_BRIDGE_*`` variables.

        Args:
            env: Environment mapping (defaults to os.environ)
            **overrides: Explicit field values, applied last
        """
        env = os.environ if env is None else env
        values: dict[str, Any] = {}

        enabled = env.get(ENV_PREFIX + "ENABLED")
        if enabled is not None:
            values["enabled"] = _env_bool(enabled, True)
        if host := env.get(ENV_PREFIX + "HOST"):
            values["host"] = host
        port = sanitize_port(env.get(ENV_PREFIX + "PORT"))
        if port is not None:
            values["port"] = port
        if token := env.get(ENV_PREFIX + "CAPABILITY_TOKEN"):
            values["capability_token"] = token

        env_protocols = _split_list(env.get(ENV_PREFIX + "PROTOCOLS"))
        if env_protocols:
            values["protocols"] = [*env_protocols, *DEFAULT_PROTOCOLS]

        int_fields = {
            "HEARTBEAT_INTERVAL_MS": "heartbeat_interval_ms",
            "MAX_PENDING_REQUESTS": "max_pending_requests",
            "MAX_QUEUED_REQUESTS": "max_queued_requests",
            "REQUEST_TIMEOUT_MS": "request_timeout_ms",
            "CONNECT_TIMEOUT_MS": "connect_timeout_ms",
            "HANDSHAKE_TIMEOUT_MS": "handshake_timeout_ms",
        }
        for env_name, field_name in int_fields.items():
            parsed = _env_int(env, env_name)
            if parsed is not None:
                values[field_name] = parsed

        if "protocols" in overrides:
            # User protocols take precedence but defaults stay negotiable
            overrides["protocols"] = [
                *overrides["protocols"],
                *values.get("protocols", []),
                *DEFAULT_PROTOCOLS,
            ]

        values.update(overrides)
        return cls(**values)
