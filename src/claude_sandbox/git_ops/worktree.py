"""Git worktree isolation for sandbox sessions.

Each session gets its own worktree on a fresh branch rooted at the current
HEAD, so container changes never touch the primary checkout. Worktrees share
the git object store, so creation is cheap.

Design: the worktree and its branch outlive the session. They are left on
disk for review/merge; only the container is torn down. ``cleanup`` exists
for callers that want it but the session pipeline never calls it.
"""

from __future__ import annotations

import re
import subprocess
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from claude_sandbox.config import get_settings
from claude_sandbox.errors import CommitFailed, NotAVersionControlRoot, WorktreeCreationFailed
from claude_sandbox.git_ops.utils import (
    GitCommandError,
    is_git_repository,
    pending_changes,
    require_success,
    run_git,
)
from claude_sandbox.logger import logger
from claude_sandbox.types import WorktreeRef

# Returns True if it staged and committed the changes itself; False/None → fallback.
CommitStrategy = Callable[[WorktreeRef], bool | None]

_INVALID_REF_CHARS = re.compile(r"[^A-Za-z0-9._/-]+")


def derive_branch_name(worktree_path: Path, prefix: str = "sandbox/") -> str:
    """Branch name for a worktree: *prefix* + the path's final segment.

    Deterministic, so distinct worktree paths give distinct branches.
    Characters git rejects in ref names are replaced with ``-``.
    """
    segment = _INVALID_REF_CHARS.sub("-", worktree_path.name).strip("-.") or "worktree"
    return f"{prefix}{segment}"


def default_worktree_path(project_root: Path, timestamp_ms: int, suffix: str = "-sandbox") -> Path:
    """``<parent>/<project>{suffix}-<timestamp_ms>`` next to the project root."""
    return project_root.parent / f"{project_root.name}{suffix}-{timestamp_ms}"


def fallback_commit_message(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return f"claude-sandbox: automatic commit [{stamp}]"


class WorktreeIsolator:
    """Creates, commits, and (optionally) removes a session worktree.

    Args:
        project_root: Primary checkout of the repository.
        commit_strategy: Optional pluggable committer; see ``commit_changes``.
        clock_ms: Millisecond clock used for default worktree names.
    """

    def __init__(
        self,
        project_root: Path,
        commit_strategy: CommitStrategy | None = None,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self.project_root = project_root.resolve()
        self._commit_strategy = commit_strategy
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    def create(self, custom_path: str | Path | None = None) -> WorktreeRef:
        """Create a worktree on a new branch from the current HEAD.

        Raises:
            NotAVersionControlRoot: project root has no .git
            WorktreeCreationFailed: the path already exists or git failed
        """
        if not is_git_repository(self.project_root):
            raise NotAVersionControlRoot(f"Project is not a git repository: {self.project_root}")

        s = get_settings()
        if custom_path is not None:
            worktree_path = Path(custom_path).expanduser().resolve()
        else:
            worktree_path = default_worktree_path(
                self.project_root, self._clock_ms(), s.worktree.dir_suffix
            ).resolve()
        branch_name = derive_branch_name(worktree_path, s.worktree.branch_prefix)

        # Colliding path (same millisecond, or a reused custom path): fail, never suffix.
        if worktree_path.exists():
            raise WorktreeCreationFailed(f"Worktree path already exists: {worktree_path}")

        logger.info("Creating git worktree", path=str(worktree_path), branch=branch_name)
        try:
            add = run_git(
                "worktree",
                "add",
                "-b",
                branch_name,
                str(worktree_path),
                "HEAD",
                cwd=self.project_root,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise WorktreeCreationFailed(f"Failed to create git worktree: {exc}") from exc
        if add.returncode != 0:
            raise WorktreeCreationFailed(f"Failed to create git worktree: {add.stderr.strip()}")

        logger.info("Worktree created", path=str(worktree_path), branch=branch_name)
        return WorktreeRef(path=worktree_path, branch_name=branch_name)

    def commit_changes(self, ref: WorktreeRef) -> bool:
        """Commit pending worktree changes. Returns False when there was nothing to commit.

        The commit strategy (if any) runs first; when it reports success it
        is assumed to have staged and committed on its own. Otherwise all
        changes are staged and committed with a timestamped message.

        Raises:
            CommitFailed: status, stage or commit step failed (never retried)
        """
        logger.info("Committing changes in worktree", path=str(ref.path))
        try:
            status = pending_changes(ref.path)
        except (GitCommandError, OSError, subprocess.SubprocessError) as exc:
            raise CommitFailed(f"Failed to commit changes: {exc}") from exc

        if not status:
            logger.info("No changes to commit", path=str(ref.path))
            return False

        if self._commit_strategy is not None and self._commit_strategy(ref):
            logger.info("Changes committed by commit strategy", branch=ref.branch_name)
            return True

        message = fallback_commit_message()
        try:
            require_success(run_git("add", "-A", cwd=ref.path), "add -A")
            require_success(run_git("commit", "-m", message, cwd=ref.path), "commit")
        except (GitCommandError, OSError, subprocess.SubprocessError) as exc:
            raise CommitFailed(f"Failed to commit changes: {exc}") from exc

        logger.info("Committed changes", message=message, branch=ref.branch_name)
        return True

    def cleanup(self, ref: WorktreeRef) -> bool:
        """Best-effort ``git worktree remove``. Failures are logged, never raised."""
        try:
            result = run_git("worktree", "remove", str(ref.path), cwd=self.project_root)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Failed to cleanup worktree", path=str(ref.path), error=str(exc))
            return False
        if result.returncode != 0:
            logger.warning(
                "Failed to cleanup worktree",
                path=str(ref.path),
                error=result.stderr.strip(),
            )
            return False
        logger.info("Cleaned up worktree", path=str(ref.path))
        return True
