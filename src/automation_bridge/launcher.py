"""Peer process launcher.

Starts the peer executable for a project in one of several modes and polls
for readiness afterwards. The bridge only depends on the ``PeerLauncher``
protocol; ``SubprocessLauncher`` is the default implementation.

Executable lookup order:
    1. ``editor_path`` passed in the launch options
    2. ``AUTOMATION_BRIDGE_PEER_PATH`` environment variable
    3. ``search_paths`` given to the launcher
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import shlex
import subprocess
import sys
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from .errors import LaunchError

logger = logging.getLogger(__name__)

PEER_PATH_ENV = "AUTOMATION_BRIDGE_PEER_PATH"

ReadyPredicate = Callable[[], bool | Awaitable[bool]]


class LaunchMode(str, Enum):
    """How the peer process is started."""

    EDITOR = "editor"
    HEADLESS = "headless"
    GAME = "game"
    SERVER = "server"
    COMMANDLET = "commandlet"


# Mode-specific arguments appended after the project path
MODE_ARGS: dict[LaunchMode, list[str]] = {
    LaunchMode.EDITOR: [],
    LaunchMode.HEADLESS: [
        "-nullrhi",
        "-nosplash",
        "-unattended",
        "-nopause",
        "-nosound",
        "-noloadstartuppackages",
    ],
    LaunchMode.GAME: ["-game", "-windowed", "-ResX=1280", "-ResY=720"],
    LaunchMode.SERVER: ["-server", "-log", "-unattended"],
    LaunchMode.COMMANDLET: ["-unattended", "-nopause"],
}

# Always passed so the automation listener starts with the peer
COMMON_ARGS = ["-ExecCmds=MCP.Enable", "-log"]


@dataclass
class LaunchOptions:
    """Options for one peer launch."""

    project_path: str
    mode: LaunchMode = LaunchMode.EDITOR
    editor_path: str | None = None
    additional_args: str | None = None
    commandlet_name: str | None = None
    commandlet_args: str | None = None
    detached: bool = True
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None


@dataclass
class LaunchResult:
    """Outcome of a successful launch."""

    pid: int | None
    command: str
    args: list[str]
    process: asyncio.subprocess.Process | None = None


@runtime_checkable
class PeerLauncher(Protocol):
    """Starts the peer process and waits for it to become reachable."""

    async def launch(self, options: LaunchOptions) -> LaunchResult: ...

    async def wait_until_ready(
        self,
        timeout_ms: int,
        poll_interval_ms: int,
        predicate: ReadyPredicate,
    ) -> None: ...


def build_launch_args(options: LaunchOptions) -> list[str]:
    """Build the peer command line (without the executable)."""
    args = [options.project_path]
    if options.mode == LaunchMode.COMMANDLET and options.commandlet_name:
        args.append(f"-run={options.commandlet_name}")
        if options.commandlet_args:
            args.extend(shlex.split(options.commandlet_args))
    args.extend(MODE_ARGS.get(options.mode, []))
    args.extend(COMMON_ARGS)
    if options.additional_args:
        args.extend(options.additional_args.split())
    return args


async def wait_until_ready(
    timeout_ms: int,
    poll_interval_ms: int,
    predicate: ReadyPredicate,
) -> None:
    """Poll ``predicate`` until it returns True.

    The predicate may be sync or async. Exceptions from it count as "not
    ready yet".

    Raises:
        LaunchError: If the predicate is not satisfied within ``timeout_ms``
    """
    deadline = time.monotonic() + timeout_ms / 1000
    interval = max(poll_interval_ms, 1) / 1000
    while True:
        try:
            result = predicate()
            if inspect.isawaitable(result):
                result = await result
            if result:
                return
        except Exception as e:
            logger.debug(f"Readiness check failed: {e}")

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise LaunchError(f"Peer did not become ready within {timeout_ms}ms")
        await asyncio.sleep(min(interval, remaining))


class SubprocessLauncher:
    """Launch the peer as a local subprocess."""

    def __init__(self, search_paths: Sequence[str] = ()) -> None:
        self._search_paths = list(search_paths)

    def find_executable(self, editor_path: str | None = None) -> str:
        """Resolve the peer executable.

        Raises:
            LaunchError: If no candidate exists on disk
        """
        candidates = [editor_path, os.getenv(PEER_PATH_ENV), *self._search_paths]
        for candidate in candidates:
            if not candidate:
                continue
            path = Path(candidate).expanduser()
            if path.exists():
                logger.info(f"Using peer executable: {path}")
                return str(path)
        raise LaunchError(
            f"Could not find the peer executable. Set the {PEER_PATH_ENV} "
            "environment variable or provide editor_path."
        )

    async def launch(self, options: LaunchOptions) -> LaunchResult:
        if not options.project_path:
            raise LaunchError("Project path is required")
        if not Path(options.project_path).exists():
            raise LaunchError(f"Project file not found: {options.project_path}")

        command = self.find_executable(options.editor_path)
        args = build_launch_args(options)

        logger.info(f"Launching peer ({options.mode.value}): {command} {' '.join(args)}")

        kwargs: dict = {
            "env": {**os.environ, **options.env},
            "cwd": options.cwd,
        }
        if options.detached:
            kwargs["stdin"] = subprocess.DEVNULL
            kwargs["stdout"] = subprocess.DEVNULL
            kwargs["stderr"] = subprocess.DEVNULL
            if sys.platform == "win32":
                kwargs["creationflags"] = subprocess.DETACHED_PROCESS  # type: ignore[attr-defined]
            else:
                kwargs["start_new_session"] = True

        try:
            process = await asyncio.create_subprocess_exec(command, *args, **kwargs)
        except OSError as e:
            raise LaunchError(f"Failed to launch peer: {e}") from e

        logger.info(f"Peer launched with pid {process.pid}")
        return LaunchResult(
            pid=process.pid,
            command=command,
            args=args,
            process=None if options.detached else process,
        )

    async def wait_until_ready(
        self,
        timeout_ms: int,
        poll_interval_ms: int,
        predicate: ReadyPredicate,
    ) -> None:
        await wait_until_ready(timeout_ms, poll_interval_ms, predicate)
