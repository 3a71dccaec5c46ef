"""Session orchestrator: the sequential sandbox pipeline as a state machine.

    Validating → WorktreeReady? → ConfigReady → ImageReady → ContainerRunning
      → CommandsExecuted? → Attached → Committed? → TornDown | Preserved

Any fatal error moves the session straight to Failed. Nothing already done
is rolled back: the worktree stays on disk and a half-started container is
left for inspection.
"""

from __future__ import annotations

import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from claude_sandbox.bundle import ConfigBundler
from claude_sandbox.config import get_settings
from claude_sandbox.container_runner import ContainerLifecycle
from claude_sandbox.errors import SandboxError
from claude_sandbox.git_ops import CommitStrategy, WorktreeIsolator, current_branch
from claude_sandbox.git_ops.utils import is_git_repository
from claude_sandbox.image_cache import ImageCache
from claude_sandbox.logger import logger
from claude_sandbox.runtime.docker import DockerClient
from claude_sandbox.sandbox_config import load_setup_commands
from claude_sandbox.system_checks import validate_environment
from claude_sandbox.types import (
    ContainerHandle,
    Session,
    SessionState,
    SetupCommand,
    WorktreeRef,
)


def default_session_name(timestamp_ms: int) -> str:
    return f"claude-sandbox-{timestamp_ms}"


@dataclass
class SessionOptions:
    """What the user asked for on the command line."""

    project_path: Path
    name: str | None = None
    worktree_path: str | None = None
    use_worktree: bool = True
    preserve_container: bool = False


class SessionOrchestrator:
    """Runs one sandbox session end to end.

    Collaborators are injectable; by default they are built around the one
    DockerClient handed in by the caller.
    """

    def __init__(
        self,
        options: SessionOptions,
        client: DockerClient,
        *,
        isolator: WorktreeIsolator | None = None,
        bundler: ConfigBundler | None = None,
        image_cache: ImageCache | None = None,
        lifecycle: ContainerLifecycle | None = None,
        commit_strategy: CommitStrategy | None = None,
        clock_ms: Callable[[], int] | None = None,
        interactive: bool | None = None,
    ) -> None:
        self.options = options
        self.client = client
        self.project_root = options.project_path.expanduser().resolve()
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))
        self.isolator = isolator or WorktreeIsolator(
            self.project_root, commit_strategy=commit_strategy, clock_ms=self._clock_ms
        )
        self.bundler = bundler or ConfigBundler.from_settings()
        self.image_cache = image_cache or ImageCache(client)
        self.lifecycle = lifecycle or ContainerLifecycle(client)
        self._interactive = interactive

        self.state = SessionState.VALIDATING
        self.history: list[SessionState] = [SessionState.VALIDATING]
        self.session: Session | None = None
        self.worktree: WorktreeRef | None = None
        self.handle: ContainerHandle | None = None

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session state", previous=self.state.value, state=state.value)
        self.state = state
        self.history.append(state)

    def run(self) -> int:
        """Execute the pipeline. Returns the process exit code (0 or 1)."""
        try:
            self._run_pipeline()
        except (SandboxError, OSError, subprocess.SubprocessError) as exc:
            logger.error("Sandbox session failed", state=self.state.value, error=str(exc))
            self._transition(SessionState.FAILED)
            return 1
        return 0

    def _run_pipeline(self) -> None:
        s = get_settings()
        opts = self.options

        validate_environment(self.project_root, self.client)
        if is_git_repository(self.project_root):
            logger.info(
                "Starting sandbox session",
                project=str(self.project_root),
                branch=current_branch(self.project_root),
            )

        if opts.use_worktree:
            self.worktree = self.isolator.create(opts.worktree_path)
            isolated_root = self.worktree.path
            self._transition(SessionState.WORKTREE_READY)
        else:
            logger.info("Worktree isolation disabled, mounting the project directly")
            isolated_root = self.project_root

        self.session = Session(
            session_id=opts.name or default_session_name(self._clock_ms()),
            project_root=self.project_root,
            isolated_root=isolated_root,
            preserve_on_exit=opts.preserve_container,
        )

        bundle = self.bundler.collect()
        env_vars = self.bundler.env_vars(bundle)
        self._transition(SessionState.CONFIG_READY)

        self.image_cache.ensure(s.container.image)
        self._transition(SessionState.IMAGE_READY)

        commands = load_setup_commands(isolated_root)
        exec_mode = s.container.setup_mode == "exec"
        batch = [] if exec_mode else commands
        self.handle = self.lifecycle.create(self.session, bundle, env_vars, batch)
        self._transition(SessionState.CONTAINER_RUNNING)

        readiness = self.lifecycle.await_readiness(self.handle)
        if commands:
            if exec_mode:
                self._execute_commands(self.handle, commands)
            elif readiness.status == "failed":
                logger.warning("Continuing with a partially set up container")
            self._transition(SessionState.COMMANDS_EXECUTED)

        attached = self.lifecycle.attach(self.handle, interactive=self._interactive)
        self._transition(SessionState.ATTACHED)

        if self.worktree is not None:
            self.isolator.commit_changes(self.worktree)
            self._transition(SessionState.COMMITTED)

        if self.session.preserve_on_exit or not attached.interactive:
            logger.info(
                "Container preserved",
                name=self.handle.name,
                attach_with=attached.manual_command
                or f"{self.client.cli} exec -it {self.handle.id} bash",
            )
            self._transition(SessionState.PRESERVED)
        else:
            self.lifecycle.teardown(self.handle)
            self._transition(SessionState.TORN_DOWN)

        if self.worktree is not None:
            logger.info(
                "Session changes are on the worktree branch",
                path=str(self.worktree.path),
                branch=self.worktree.branch_name,
            )

    def _execute_commands(self, handle: ContainerHandle, commands: list[SetupCommand]) -> None:
        failure = self.lifecycle.execute_commands(handle, commands)
        if failure is not None:
            logger.warning(
                "Setup command failed, continuing session",
                command=failure.command,
                exit_code=failure.exit_code,
                output=failure.output.rstrip(),
            )
