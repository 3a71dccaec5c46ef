"""Container runner: the sandbox container from creation to teardown.

This package is split into focused submodules:
  _mounts        staging of the config bundle and setup batch, mount and env lists
  _lifecycle     ContainerLifecycle (create/start, exec batch, stop/remove)
  _readiness     polling for in-container setup completion
  _attach        interactive shell with captured-environment propagation
  setup_runner   stdlib-only helper executed inside the container
  image/         Dockerfile and entrypoint.sh of the base image
"""

from claude_sandbox.container_runner._attach import load_captured_env, select_propagated
from claude_sandbox.container_runner._lifecycle import ContainerLifecycle
from claude_sandbox.container_runner._readiness import (
    NO_SETUP_COMMANDS_SENTINEL,
    SETUP_COMPLETE_SENTINEL,
    SETUP_FAILED_SENTINEL,
    read_ready_artifact,
    scan_sentinels,
)

__all__ = [
    "NO_SETUP_COMMANDS_SENTINEL",
    "SETUP_COMPLETE_SENTINEL",
    "SETUP_FAILED_SENTINEL",
    "ContainerLifecycle",
    "load_captured_env",
    "read_ready_artifact",
    "scan_sentinels",
    "select_propagated",
]
