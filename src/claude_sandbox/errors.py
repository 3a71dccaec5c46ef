"""Exception taxonomy for sandbox sessions.

Every failure the orchestrator treats as fatal derives from SandboxError.
Best-effort failures (cleanup, settings transform, env extraction) are
logged where they happen and never raised.
"""

from __future__ import annotations


class SandboxError(Exception):
    """Base class for fatal sandbox session failures."""


# --- Validation / preconditions ---


class EnvironmentValidationError(SandboxError):
    """One or more prerequisites are missing. Reported together."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("Environment validation failed:\n" + "\n".join(self.problems))


class NotAVersionControlRoot(SandboxError):
    """The project root has no repository metadata."""


class ConfigDirectoryMissing(SandboxError):
    """The user-level configuration directory does not exist."""


# --- External tool failures ---


class WorktreeCreationFailed(SandboxError):
    """git worktree add failed, or the target path is already taken."""


class CommitFailed(SandboxError):
    """Staging or committing pending worktree changes failed."""


class ImageBuildFailed(SandboxError):
    """The container image could not be built."""


class ContainerCreateFailed(SandboxError):
    """The container could not be created."""


class ContainerStartFailed(SandboxError):
    """The container was created but did not start."""


class ContainerOperationFailed(SandboxError):
    """A lifecycle call (stop, remove) against an existing container failed."""
