"""Git operations: worktree isolation and shared helpers."""

from claude_sandbox.git_ops.utils import (
    GitCommandError,
    current_branch,
    git_available,
    is_git_repository,
    pending_changes,
    require_success,
    run_git,
)
from claude_sandbox.git_ops.worktree import (
    CommitStrategy,
    WorktreeIsolator,
    derive_branch_name,
    fallback_commit_message,
)

__all__ = [
    "CommitStrategy",
    "GitCommandError",
    "WorktreeIsolator",
    "current_branch",
    "derive_branch_name",
    "fallback_commit_message",
    "git_available",
    "is_git_repository",
    "pending_changes",
    "require_success",
    "run_git",
]
