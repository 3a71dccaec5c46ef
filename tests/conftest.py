"""Shared test fixtures for claude-sandbox."""

from __future__ import annotations

import subprocess
from datetime import datetime, timezone
from pathlib import Path

import pytest

from claude_sandbox.types import ImageDescriptor, VolumeMount

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures; importable by test files)
# ---------------------------------------------------------------------------

# Cached property names that must be set via __dict__ (not model_construct).
_CACHED_PROPERTY_NAMES = frozenset(
    {
        "home_dir",
        "claude_home",
        "global_settings_path",
        "build_context",
        "readiness_timeout",
        "readiness_poll_interval",
    }
)


def make_settings(**overrides):
    """Create a Settings object with sensible defaults for testing.

    Accepts both model fields (container, claude, etc.) and cached property
    overrides (claude_home, build_context, readiness_timeout, etc.).

    Usage::

        s = make_settings(claude_home=tmp_path / ".claude")
        s = make_settings(container=ContainerConfig(setup_mode="exec"))
    """
    from claude_sandbox.config import (
        ClaudeConfig,
        ContainerConfig,
        EnvironmentConfig,
        LoggingConfig,
        Settings,
        WorktreeConfig,
    )

    cached = {k: overrides.pop(k) for k in list(overrides) if k in _CACHED_PROPERTY_NAMES}

    defaults = {
        "container": ContainerConfig(),
        "claude": ClaudeConfig(),
        "worktree": WorktreeConfig(),
        "environment": EnvironmentConfig(),
        "logging": LoggingConfig(),
    }
    defaults.update(overrides)
    s = Settings.model_construct(**defaults)

    for key, value in cached.items():
        s.__dict__[key] = value

    return s


def git(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=True,
    )


def make_repo(path: Path) -> Path:
    """Initialize a repo at *path* with one commit on main."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "--initial-branch=main")
    git(path, "config", "user.email", "test@test.com")
    git(path, "config", "user.name", "Test")
    (path / "README.md").write_text("initial")
    git(path, "add", "README.md")
    git(path, "commit", "-m", "initial commit")
    return path


def completed(returncode: int = 0, stdout: str = "", stderr: str = ""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class FakeDockerClient:
    """In-memory stand-in for DockerClient that records every call.

    Args:
        exec_results: command text -> (returncode, output) for ``exec``;
            unknown commands succeed with empty output.
    """

    cli = "docker"
    name = "docker"

    def __init__(
        self,
        *,
        ping_ok: bool = True,
        images: dict[str, datetime] | None = None,
        logs: str = "[SANDBOX] NO_SETUP_COMMANDS\n",
        exec_results: dict[str, tuple[int, str]] | None = None,
        interactive_exit: int = 0,
    ) -> None:
        self.ping_ok = ping_ok
        self.images = dict(images or {})
        self.log_output = logs
        self.exec_results = dict(exec_results or {})
        self.interactive_exit = interactive_exit
        self.calls: list[tuple[str, object]] = []
        self.created: list[dict] = []
        self.exec_commands: list[str] = []
        self.interactive_env: list[str] | None = None
        self.fail_on: set[str] = set()

    def _record(self, op: str, payload: object = None) -> None:
        from claude_sandbox.runtime.docker import DockerCommandError

        self.calls.append((op, payload))
        if op in self.fail_on:
            raise DockerCommandError(op, f"{op} exploded", 1)

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]

    def is_available(self) -> bool:
        return True

    def ping(self) -> bool:
        return self.ping_ok

    def inspect_image(self, image: str) -> ImageDescriptor | None:
        self._record("inspect_image", image)
        created = self.images.get(image)
        return ImageDescriptor(name=image, created_at=created) if created else None

    def build_image(self, image: str, context: str, dockerfile: str) -> None:
        self._record("build_image", (image, context, dockerfile))
        self.images[image] = datetime.now(timezone.utc)

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
        self._record("create_container", name)
        self.created.append(
            {
                "name": name,
                "image": image,
                "mounts": mounts,
                "env": env,
                "user": user,
                "workdir": workdir,
                "network": network,
            }
        )
        return f"{name}-id"

    def start_container(self, container_id: str) -> None:
        self._record("start_container", container_id)

    def logs(self, container_id: str) -> str:
        self._record("logs", container_id)
        return self.log_output

    def stop_container(self, container_id: str, *, timeout: int = 10) -> None:
        self._record("stop_container", container_id)

    def remove_container(self, container_id: str) -> None:
        self._record("remove_container", container_id)

    def exec(self, container_id: str, argv: list[str], *, timeout: float | None = None):
        self._record("exec", argv)
        command = argv[-1]
        self.exec_commands.append(command)
        returncode, output = self.exec_results.get(command, (0, ""))
        return completed(returncode, stdout=output)

    def exec_interactive(
        self, container_id: str, argv: list[str], *, env: list[str] | None = None
    ) -> int:
        self._record("exec_interactive", argv)
        self.interactive_env = list(env or [])
        return self.interactive_exit


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _clean_git_env():
    """Strip git env vars that pre-commit leaks during its stash cycle.

    Tests that create temporary git repos inherit these variables, causing
    ``git worktree add`` and similar commands to fail.
    """
    import os

    for var in ("GIT_INDEX_FILE", "GIT_DIR", "GIT_WORK_TREE"):
        os.environ.pop(var, None)


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean Settings singleton.

    Uses ``make_settings()`` to build from pure defaults: no config.toml,
    no .env, no file I/O. Tests are fully isolated from the user's config.
    """
    safe = make_settings()
    monkeypatch.setattr("claude_sandbox.config._settings", safe)


# ---------------------------------------------------------------------------
# Reusable fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def use_settings(monkeypatch):
    """Install a ``make_settings(**overrides)`` singleton for the current test."""

    def _install(**overrides):
        s = make_settings(**overrides)
        monkeypatch.setattr("claude_sandbox.config._settings", s)
        return s

    return _install


@pytest.fixture
def claude_home(tmp_path: Path) -> Path:
    """A minimal ~/.claude with settings carrying one env var and one macOS hook."""
    home = tmp_path / "home" / ".claude"
    home.mkdir(parents=True)
    (home / "settings.json").write_text(
        '{"env": {"ANTHROPIC_MODEL": "opus"},'
        ' "hooks": {"Stop": [{"hooks": [{"type": "command", "command": "afplay done.wav"}]}]}}'
    )
    (home / "CLAUDE.md").write_text("# memory")
    return home
