"""Readiness polling: wait for in-container setup to finish.

The setup helper writes ``ready.json`` into the mounted capture directory
before the entrypoint prints its sentinel, so the artifact is checked first
and the log sentinels are the fallback (and the only signal when no setup
commands were mounted). Timing out is not an error: the caller attaches anyway.
"""

from __future__ import annotations

import json
import re
import subprocess
import time
from collections.abc import Callable
from pathlib import Path

from claude_sandbox.container_runner import setup_runner
from claude_sandbox.logger import logger
from claude_sandbox.runtime.docker import DockerClient
from claude_sandbox.types import ContainerHandle, ReadinessResult

SETUP_COMPLETE_SENTINEL = "[SANDBOX] SETUP_COMPLETE"
NO_SETUP_COMMANDS_SENTINEL = "[SANDBOX] NO_SETUP_COMMANDS"
SETUP_FAILED_SENTINEL = "[SANDBOX] SETUP_FAILED"

_SETUP_FAILED_RE = re.compile(r"\[SANDBOX\] SETUP_FAILED \(exit (\d+)\)")


def read_ready_artifact(capture_dir: Path | None) -> ReadinessResult | None:
    """Parse ``ready.json`` from the host side of the capture mount, if written yet."""
    if capture_dir is None:
        return None
    path = capture_dir / setup_runner.READY_FILE_NAME
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.debug("Readiness artifact not readable yet", path=str(path), error=str(exc))
        return None
    if not isinstance(data, dict) or data.get("status") not in ("completed", "failed"):
        logger.warning("Ignoring malformed readiness artifact", path=str(path))
        return None
    return ReadinessResult(
        status=data["status"],
        failed_command=data.get("failed_command"),
        exit_code=data.get("exit_code"),
    )


def scan_sentinels(output: str) -> ReadinessResult | None:
    if SETUP_FAILED_SENTINEL in output:
        match = _SETUP_FAILED_RE.search(output)
        return ReadinessResult(status="failed", exit_code=int(match.group(1)) if match else None)
    if SETUP_COMPLETE_SENTINEL in output:
        return ReadinessResult(status="completed")
    if NO_SETUP_COMMANDS_SENTINEL in output:
        return ReadinessResult(status="no_commands")
    return None


def _fetch_logs(client: DockerClient, container_id: str) -> str:
    try:
        return client.logs(container_id)
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Failed to read container logs", container=container_id, error=str(exc))
        return ""


def await_readiness(
    client: DockerClient,
    handle: ContainerHandle,
    timeout: float,
    poll_interval: float,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ReadinessResult:
    """Poll until setup reports completion or *timeout* seconds elapse."""
    logger.info("Waiting for container setup", container=handle.name, timeout_s=timeout)
    deadline = clock() + timeout
    output = ""
    while True:
        result = read_ready_artifact(handle.capture_dir)
        if result is None:
            output = _fetch_logs(client, handle.id)
            result = scan_sentinels(output)
        if result is not None:
            if result.status == "failed":
                logger.warning(
                    "Setup command failed inside the container",
                    command=result.failed_command,
                    exit_code=result.exit_code,
                )
            else:
                logger.info("Container ready", status=result.status)
            return result
        if clock() >= deadline:
            break
        sleep(poll_interval)

    logger.warning(
        "Timed out waiting for container setup, attaching anyway",
        container=handle.name,
        timeout_s=timeout,
    )
    logger.warning("Container output so far", output=output)
    return ReadinessResult(status="timeout")
