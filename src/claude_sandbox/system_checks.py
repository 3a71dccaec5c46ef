"""Pre-flight checks for external dependencies (container runtime, git, user config).

Every problem is collected before anything is reported, so one run shows
the user the full list of things to fix.
"""

from __future__ import annotations

from pathlib import Path

from claude_sandbox.config import get_settings
from claude_sandbox.errors import EnvironmentValidationError
from claude_sandbox.git_ops import git_available
from claude_sandbox.logger import logger
from claude_sandbox.runtime.docker import DockerClient


def collect_problems(client: DockerClient) -> list[str]:
    """Return a human-readable line per failed check; [] when all pass."""
    s = get_settings()
    problems: list[str] = []

    if not client.ping():
        problems.append(f"{client.cli} is not running or not accessible")

    user_settings = s.claude_home / s.claude.settings_name
    if not user_settings.exists():
        problems.append(f"Claude settings not found at {user_settings}")

    if not git_available():
        problems.append("git is not installed or not in PATH")

    return problems


def validate_environment(project_root: Path, client: DockerClient) -> None:
    """Verify prerequisites and make sure the project directory exists.

    Raises:
        EnvironmentValidationError: one or more checks failed (all are listed)
    """
    problems = collect_problems(client)
    if problems:
        raise EnvironmentValidationError(problems)

    if not project_root.exists():
        logger.info("Creating project directory", path=str(project_root))
        project_root.mkdir(parents=True)

    logger.debug("Environment validation passed")
