"""Data models for claude-sandbox sessions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class Session:
    """One orchestrated sandbox session.

    ``isolated_root`` equals ``project_root`` when worktree isolation is off.
    """

    session_id: str
    project_root: Path
    isolated_root: Path
    preserve_on_exit: bool = False


@dataclass(frozen=True)
class WorktreeRef:
    path: Path
    branch_name: str


@dataclass(frozen=True)
class ConfigBundle:
    """User configuration collected for mounting into the container.

    Attributes:
        files: relative path (posix, no ``..`` segments) -> file bytes.
        global_settings: contents of the top-level global settings file,
            or None when that file does not exist.
    """

    files: dict[str, bytes] = field(default_factory=dict)
    global_settings: bytes | None = None

    def get(self, relative_path: str) -> bytes | None:
        return self.files.get(relative_path)


@dataclass(frozen=True)
class ImageDescriptor:
    name: str
    created_at: datetime


@dataclass
class VolumeMount:
    host_path: str
    container_path: str
    readonly: bool = False


@dataclass(frozen=True)
class SetupCommand:
    """A single project setup step run inside the container."""

    index: int
    run: str
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.run

    def to_dict(self) -> dict[str, object]:
        return {"index": self.index, "name": self.label, "run": self.run}


@dataclass
class ContainerHandle:
    """Reference to a created container.

    ``id`` is the only value later lifecycle calls rely on. ``capture_dir``
    is the host side of the env-capture mount (None without setup commands).
    """

    id: str
    name: str
    mounts: list[VolumeMount] = field(default_factory=list)
    env_vars: list[str] = field(default_factory=list)
    has_setup_commands: bool = False
    staging_dir: Path | None = None
    capture_dir: Path | None = None


@dataclass(frozen=True)
class CommandFailure:
    """First failing command of an exec batch."""

    command: str
    exit_code: int
    output: str


@dataclass(frozen=True)
class ReadinessResult:
    """Outcome of polling for in-container setup completion.

    ``status`` is "completed", "failed", "no_commands" or "timeout".
    """

    status: str
    failed_command: str | None = None
    exit_code: int | None = None

    @property
    def ready(self) -> bool:
        return self.status in ("completed", "no_commands")


@dataclass(frozen=True)
class AttachResult:
    """Either the interactive shell's exit status, or how to attach by hand."""

    exit_code: int | None = None
    manual_command: str | None = None

    @property
    def interactive(self) -> bool:
        return self.manual_command is None


class SessionState(enum.Enum):
    VALIDATING = "Validating"
    WORKTREE_READY = "WorktreeReady"
    CONFIG_READY = "ConfigReady"
    IMAGE_READY = "ImageReady"
    CONTAINER_RUNNING = "ContainerRunning"
    COMMANDS_EXECUTED = "CommandsExecuted"
    ATTACHED = "Attached"
    COMMITTED = "Committed"
    TORN_DOWN = "TornDown"
    PRESERVED = "Preserved"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.TORN_DOWN, SessionState.PRESERVED, SessionState.FAILED)
