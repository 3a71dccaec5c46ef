"""Container runtime client."""

from claude_sandbox.runtime.docker import (
    DockerClient,
    DockerCommandError,
    mount_args,
    parse_docker_timestamp,
)

__all__ = [
    "DockerClient",
    "DockerCommandError",
    "mount_args",
    "parse_docker_timestamp",
]
