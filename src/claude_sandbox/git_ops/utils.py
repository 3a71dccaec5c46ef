"""Shared git helpers used by the worktree isolator and system checks."""

from __future__ import annotations

import subprocess
from pathlib import Path

from claude_sandbox.logger import logger

_SUBPROCESS_TIMEOUT = 60


def run_git(
    *args: str,
    cwd: Path,
    timeout: int = _SUBPROCESS_TIMEOUT,
) -> subprocess.CompletedProcess[str]:
    """Run a git command with standard timeout and error capture."""
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class GitCommandError(Exception):
    """Raised when a git command fails."""

    def __init__(self, command: str, stderr: str, returncode: int) -> None:
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"git {command} failed (exit {returncode}): {stderr}")


def require_success(result: subprocess.CompletedProcess[str], command: str) -> str:
    """Assert that a git command succeeded, raising GitCommandError otherwise.

    Returns the stripped stdout on success.
    """
    if result.returncode != 0:
        raise GitCommandError(command, result.stderr.strip(), result.returncode)
    return result.stdout.strip()


def is_git_repository(path: Path) -> bool:
    """True if *path* carries repository metadata (.git dir, or .git file for worktrees)."""
    return (path / ".git").exists()


def git_available() -> bool:
    try:
        return run_git("--version", cwd=Path.cwd(), timeout=10).returncode == 0
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("git --version failed", error=str(exc))
        return False


def current_branch(cwd: Path) -> str:
    """Return the checked-out branch name, or 'HEAD' when detached / unknown."""
    try:
        result = run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
        return result.stdout.strip() if result.returncode == 0 else "HEAD"
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("current_branch failed", error=str(exc), cwd=str(cwd))
        return "HEAD"


def pending_changes(cwd: Path) -> str:
    """Return ``git status --porcelain`` output (empty when the tree is clean).

    Raises GitCommandError if the status query itself fails.
    """
    return require_success(run_git("status", "--porcelain", cwd=cwd), "status --porcelain")
