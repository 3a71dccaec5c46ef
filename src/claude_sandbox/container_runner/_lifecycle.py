"""Container lifecycle: create + start, command execution, readiness, attach, teardown."""

from __future__ import annotations

import shutil
import subprocess

from claude_sandbox.config import get_settings
from claude_sandbox.container_runner._attach import attach as _attach
from claude_sandbox.container_runner._mounts import _build_env, _build_volume_mounts, stage_session
from claude_sandbox.container_runner._readiness import await_readiness as _await_readiness
from claude_sandbox.errors import (
    ContainerCreateFailed,
    ContainerOperationFailed,
    ContainerStartFailed,
)
from claude_sandbox.logger import logger
from claude_sandbox.runtime.docker import DockerClient, DockerCommandError
from claude_sandbox.types import (
    AttachResult,
    CommandFailure,
    ConfigBundle,
    ContainerHandle,
    ReadinessResult,
    Session,
    SetupCommand,
)

_RUNTIME_ERRORS = (DockerCommandError, OSError, subprocess.SubprocessError)


class ContainerLifecycle:
    """Drives one sandbox container through the session pipeline.

    The runtime client is injected; nothing here talks to docker directly.
    """

    def __init__(self, client: DockerClient) -> None:
        self.client = client

    def create(
        self,
        session: Session,
        bundle: ConfigBundle,
        env_vars: list[str],
        commands: list[SetupCommand],
    ) -> ContainerHandle:
        """Stage files, then create and start the container.

        *commands* become the in-container setup batch; pass [] to mount none.

        Raises:
            ContainerCreateFailed: staging or ``docker create`` failed
            ContainerStartFailed: ``docker start`` failed
        """
        s = get_settings()
        try:
            staged = stage_session(session.session_id, bundle, commands)
        except OSError as exc:
            raise ContainerCreateFailed(f"Failed to stage session files: {exc}") from exc

        has_commands = bool(commands)
        mounts = _build_volume_mounts(session.isolated_root, staged)
        env = _build_env(env_vars, has_commands)

        logger.info(
            "Creating container",
            name=session.session_id,
            image=s.container.image,
            mounts=len(mounts),
            setup_commands=len(commands),
        )
        try:
            container_id = self.client.create_container(
                name=session.session_id,
                image=s.container.image,
                mounts=mounts,
                env=env,
                user=s.container.user,
                workdir=s.WORKSPACE_PATH,
                network=s.container.network,
            )
        except _RUNTIME_ERRORS as exc:
            raise ContainerCreateFailed(
                f"Failed to create container '{session.session_id}': {exc}"
            ) from exc

        handle = ContainerHandle(
            id=container_id,
            name=session.session_id,
            mounts=mounts,
            env_vars=env,
            has_setup_commands=has_commands,
            staging_dir=staged.root,
            capture_dir=staged.capture_dir,
        )
        try:
            self.client.start_container(container_id)
        except _RUNTIME_ERRORS as exc:
            raise ContainerStartFailed(
                f"Failed to start container '{session.session_id}': {exc}"
            ) from exc

        logger.info("Container started", name=handle.name, id=handle.id[:12])
        return handle

    def execute_commands(
        self, handle: ContainerHandle, commands: list[SetupCommand]
    ) -> CommandFailure | None:
        """Run *commands* one at a time via ``docker exec``; stop at the first failure."""
        total = len(commands)
        for position, command in enumerate(commands, start=1):
            logger.info("Running command", step=f"{position}/{total}", command=command.label)
            try:
                result = self.client.exec(handle.id, ["bash", "-lc", command.run])
            except (OSError, subprocess.SubprocessError) as exc:
                logger.warning("Command could not be executed", command=command.run, error=str(exc))
                return CommandFailure(command=command.run, exit_code=-1, output=str(exc))

            output = (result.stdout or "") + (result.stderr or "")
            if result.returncode != 0:
                logger.warning(
                    "Command failed, skipping remaining commands",
                    command=command.run,
                    exit_code=result.returncode,
                    remaining=total - position,
                )
                return CommandFailure(
                    command=command.run, exit_code=result.returncode, output=output
                )
            if output.strip():
                logger.debug("Command output", command=command.run, output=output.rstrip())
        return None

    def await_readiness(
        self, handle: ContainerHandle, timeout: float | None = None
    ) -> ReadinessResult:
        s = get_settings()
        return _await_readiness(
            self.client,
            handle,
            s.readiness_timeout if timeout is None else timeout,
            s.readiness_poll_interval,
        )

    def attach(self, handle: ContainerHandle, *, interactive: bool | None = None) -> AttachResult:
        patterns = get_settings().environment.propagate_patterns
        return _attach(self.client, handle, patterns, interactive=interactive)

    def stop(self, handle: ContainerHandle) -> None:
        """Raises ContainerOperationFailed on any runtime error, including a missing container."""
        logger.info("Stopping container", name=handle.name)
        try:
            self.client.stop_container(handle.id)
        except _RUNTIME_ERRORS as exc:
            raise ContainerOperationFailed(
                f"Failed to stop container '{handle.name}': {exc}"
            ) from exc

    def remove(self, handle: ContainerHandle) -> None:
        """Force-remove the container and its anonymous volumes, then its staging files."""
        logger.info("Removing container", name=handle.name)
        try:
            self.client.remove_container(handle.id)
        except _RUNTIME_ERRORS as exc:
            raise ContainerOperationFailed(
                f"Failed to remove container '{handle.name}': {exc}"
            ) from exc
        self._discard_staging(handle)

    def teardown(self, handle: ContainerHandle) -> None:
        self.stop(handle)
        self.remove(handle)

    @staticmethod
    def _discard_staging(handle: ContainerHandle) -> None:
        if handle.staging_dir is None:
            return
        try:
            shutil.rmtree(handle.staging_dir)
        except OSError as exc:
            logger.warning(
                "Failed to remove staging directory", path=str(handle.staging_dir), error=str(exc)
            )
