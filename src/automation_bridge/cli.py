"""Automation bridge CLI.

Operator commands for checking the peer connection by hand. Connection
settings come from the ``AUTOMATION_BRIDGE_*`` environment variables unless
overridden on the command line.

Usage:
    automation-bridge status                          # Connect once, print status
    automation-bridge send get_actors                 # Send one request
    automation-bridge send spawn_actor --payload '{"classPath": "/Game/Cube"}'
    automation-bridge --port 8092 --log-level DEBUG status
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .bridge import AutomationBridge
from .config import BridgeConfig
from .errors import BridgeError

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def configure_logging(level: str) -> None:
    """Log to stderr so stdout stays machine-readable."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _build_config(ctx: click.Context) -> BridgeConfig:
    overrides: dict[str, Any] = {
        key: value for key, value in ctx.obj.items() if value is not None
    }
    return BridgeConfig.from_env(**overrides)


@click.group()
@click.option("--host", default=None, help="Peer host (default: env or 127.0.0.1)")
@click.option("--port", type=int, default=None, help="Peer port (default: env or 8091)")
@click.option("--token", "capability_token", default=None, help="Capability token")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity",
)
@click.pass_context
def main(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    capability_token: str | None,
    log_level: str,
) -> None:
    """Automation bridge - client for an automation peer."""
    configure_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj.update(host=host, port=port, capability_token=capability_token)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Connect once and print the bridge status as JSON."""
    config = _build_config(ctx)

    async def run() -> dict[str, Any]:
        bridge = AutomationBridge(config)
        try:
            await bridge.start()
            return bridge.get_status().model_dump(mode="json")
        finally:
            await bridge.stop()

    click.echo(json.dumps(asyncio.run(run()), indent=2))


@main.command()
@click.argument("action")
@click.option("--payload", default="{}", help="Request payload as a JSON object")
@click.option("--timeout-ms", type=int, default=None, help="Request timeout in milliseconds")
@click.pass_context
def send(ctx: click.Context, action: str, payload: str, timeout_ms: int | None) -> None:
    """Send one ACTION request and print the response as JSON."""
    try:
        body = json.loads(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--payload") from e
    if not isinstance(body, dict):
        raise click.BadParameter("Payload must be a JSON object", param_hint="--payload")

    config = _build_config(ctx)

    async def run() -> dict[str, Any]:
        async with AutomationBridge(config) as bridge:
            response = await bridge.send_request(action, body, timeout_ms=timeout_ms)
            return response.to_wire()

    try:
        result = asyncio.run(run())
    except BridgeError as e:
        click.echo(json.dumps({"success": False, "error": e.code, "message": str(e)}), err=True)
        sys.exit(1)

    click.echo(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
