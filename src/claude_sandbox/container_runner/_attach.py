"""Interactive attach with captured-environment propagation."""

from __future__ import annotations

import sys
from pathlib import Path

from claude_sandbox.container_runner import setup_runner
from claude_sandbox.logger import logger
from claude_sandbox.runtime.docker import DockerClient
from claude_sandbox.types import AttachResult, ContainerHandle

SHELL_ARGV = ["bash"]


def has_interactive_terminal() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def load_captured_env(capture_dir: Path | None) -> list[str]:
    """``KEY=VALUE`` entries the setup helper captured; [] when absent or unreadable."""
    if capture_dir is None:
        return []
    path = capture_dir / setup_runner.CAPTURE_ENV_NAME
    if not path.exists():
        return []
    try:
        return setup_runner.parse_env_file(path.read_text())
    except (OSError, ValueError) as exc:
        logger.warning("Failed to load captured environment", path=str(path), error=str(exc))
        return []


def select_propagated(entries: list[str], patterns: list[str]) -> list[str]:
    """Keep entries whose variable name contains any of *patterns*."""
    selected = []
    for entry in entries:
        key = entry.split("=", 1)[0]
        if any(pattern in key for pattern in patterns):
            selected.append(entry)
    return selected


def attach(
    client: DockerClient,
    handle: ContainerHandle,
    patterns: list[str],
    *,
    interactive: bool | None = None,
) -> AttachResult:
    """Open a shell in the container and block until it exits.

    Without a terminal the container is left running and the manual
    ``docker exec`` command is returned instead.
    """
    if interactive is None:
        interactive = has_interactive_terminal()
    if not interactive:
        command = f"{client.cli} exec -it {handle.id} {' '.join(SHELL_ARGV)}"
        logger.info(
            "No interactive terminal, container left running",
            container=handle.name,
            attach_with=command,
        )
        return AttachResult(manual_command=command)

    overrides = select_propagated(load_captured_env(handle.capture_dir), patterns)
    if overrides:
        logger.debug(
            "Propagating captured environment",
            keys=[entry.split("=", 1)[0] for entry in overrides],
        )
    logger.info("Attaching to container", container=handle.name)
    exit_code = client.exec_interactive(handle.id, SHELL_ARGV, env=overrides)
    logger.info("Shell session ended", container=handle.name, exit_code=exit_code)
    return AttachResult(exit_code=exit_code)
