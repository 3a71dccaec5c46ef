"""Docker runtime client: thin wrapper over the ``docker`` CLI.

One DockerClient is constructed per invocation and passed to every
component that talks to the runtime (image cache, container lifecycle,
system checks). Tests substitute a fake with the same methods.
"""

from __future__ import annotations

import re
import shutil
import subprocess
from datetime import datetime, timezone

from claude_sandbox.logger import logger
from claude_sandbox.types import ImageDescriptor, VolumeMount

_DEFAULT_TIMEOUT = 30

# Docker reports RFC 3339 with nanoseconds; datetime only takes microseconds.
_DOCKER_TS_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


class DockerCommandError(Exception):
    """Raised when a docker CLI call exits non-zero."""

    def __init__(self, command: str, stderr: str, returncode: int) -> None:
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"docker {command} failed (exit {returncode}): {stderr}")


def parse_docker_timestamp(value: str) -> datetime:
    """Parse a docker ``Created`` timestamp into an aware UTC datetime."""
    match = _DOCKER_TS_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Unrecognized docker timestamp: {value!r}")
    frac = (match.group("frac") or "0")[:6].ljust(6, "0")
    tz = match.group("tz") or "Z"
    tz = "+00:00" if tz == "Z" else tz
    parsed = datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}")
    return parsed.astimezone(timezone.utc)


def mount_args(mounts: list[VolumeMount]) -> list[str]:
    """CLI args binding each mount; read-only mounts use ``--mount ...,readonly``."""
    args: list[str] = []
    for m in mounts:
        if m.readonly:
            args.extend(
                [
                    "--mount",
                    f"type=bind,source={m.host_path},target={m.container_path},readonly",
                ]
            )
        else:
            args.extend(["-v", f"{m.host_path}:{m.container_path}:rw"])
    return args


class DockerClient:
    """Runtime operations used by a sandbox session."""

    name = "docker"

    def __init__(self, cli: str = "docker") -> None:
        self.cli = cli

    def run(
        self,
        *args: str,
        check: bool = False,
        timeout: float | None = _DEFAULT_TIMEOUT,
        capture: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run a docker CLI command. With ``check=True`` failures raise DockerCommandError."""
        result = subprocess.run(
            [self.cli, *args],
            capture_output=capture,
            text=True,
            timeout=timeout,
        )
        if check and result.returncode != 0:
            stderr = (result.stderr or "").strip() if capture else ""
            raise DockerCommandError(" ".join(args[:2]), stderr, result.returncode)
        return result

    # --- Health ---

    def is_available(self) -> bool:
        return shutil.which(self.cli) is not None

    def ping(self) -> bool:
        """True when the CLI exists and the daemon answers."""
        if not self.is_available():
            return False
        try:
            return self.run("info", "--format", "{{.ServerVersion}}", timeout=15).returncode == 0
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("docker info failed", error=str(exc))
            return False

    # --- Images ---

    def inspect_image(self, image: str) -> ImageDescriptor | None:
        """Return the image's descriptor, or None if it does not exist locally."""
        result = self.run("image", "inspect", "--format", "{{.Created}}", image)
        if result.returncode != 0:
            return None
        return ImageDescriptor(name=image, created_at=parse_docker_timestamp(result.stdout))

    def build_image(self, image: str, context: str, dockerfile: str) -> None:
        """Build *image* from *context*; output streams to the terminal."""
        self.run(
            "build", "-t", image, "-f", dockerfile, context, check=True, timeout=None, capture=False
        )

    # --- Containers ---

    def create_container(
        self,
        *,
        name: str,
        image: str,
        mounts: list[VolumeMount],
        env: list[str],
        user: str,
        workdir: str,
        network: str = "bridge",
        command: list[str] | None = None,
    ) -> str:
        """``docker create`` with a TTY and open stdin so the shell stays alive. Returns the id."""
        args = ["create", "--name", name, "-it", "--user", user, "-w", workdir]
        args.extend(["--network", network])
        args.extend(mount_args(mounts))
        for entry in env:
            args.extend(["-e", entry])
        args.append(image)
        args.extend(command or ["/bin/bash"])
        result = self.run(*args, check=True, timeout=120)
        return result.stdout.strip()

    def start_container(self, container_id: str) -> None:
        self.run("start", container_id, check=True, timeout=60)

    def logs(self, container_id: str) -> str:
        """Combined stdout + stderr of the container so far."""
        result = self.run("logs", container_id)
        return (result.stdout or "") + (result.stderr or "")

    def stop_container(self, container_id: str, *, timeout: int = 10) -> None:
        self.run("stop", "-t", str(timeout), container_id, check=True, timeout=timeout + 30)

    def remove_container(self, container_id: str) -> None:
        """Force-remove the container and its anonymous volumes."""
        self.run("rm", "-f", "-v", container_id, check=True, timeout=60)

    def exec(
        self, container_id: str, argv: list[str], *, timeout: float | None = None
    ) -> subprocess.CompletedProcess[str]:
        """One-shot command inside a running container, output captured."""
        return subprocess.run(
            [self.cli, "exec", container_id, *argv],
            capture_output=True,
            text=True,
            timeout=timeout,
        )

    def exec_interactive(
        self, container_id: str, argv: list[str], *, env: list[str] | None = None
    ) -> int:
        """``docker exec -it`` with the terminal inherited. Blocks until the process exits."""
        args = [self.cli, "exec", "-it"]
        for entry in env or []:
            args.extend(["-e", entry])
        args.append(container_id)
        args.extend(argv)
        return subprocess.run(args).returncode
