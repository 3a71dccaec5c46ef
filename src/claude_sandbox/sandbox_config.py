"""Per-project setup commands from ``.claude-sandbox/settings.json``.

Example::

    {
      "commands": [
        "npm ci",
        {"name": "Python venv", "run": "python3 -m venv .venv && . .venv/bin/activate"}
      ]
    }

A missing, unreadable, or invalid file means "no setup commands". It is
never fatal to the session.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from claude_sandbox.logger import logger
from claude_sandbox.types import SetupCommand

SANDBOX_CONFIG_RELPATH = Path(".claude-sandbox") / "settings.json"


class _CommandRecord(BaseModel):
    model_config = {"extra": "forbid"}

    run: str
    name: str | None = None

    @field_validator("run")
    @classmethod
    def validate_run(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("command cannot be empty")
        return v


_CommandEntry = str | _CommandRecord


class ProjectSandboxConfig(BaseModel):
    commands: list[_CommandEntry] | None = Field(default=None, min_length=1)

    @field_validator("commands")
    @classmethod
    def reject_blank(cls, v: list[_CommandEntry] | None) -> list[_CommandEntry] | None:
        if v is not None and any(isinstance(c, str) and not c.strip() for c in v):
            raise ValueError("commands cannot contain empty strings")
        return v

    def setup_commands(self) -> list[SetupCommand]:
        result: list[SetupCommand] = []
        for index, entry in enumerate(self.commands or [], start=1):
            if isinstance(entry, str):
                result.append(SetupCommand(index=index, run=entry))
            else:
                result.append(SetupCommand(index=index, run=entry.run, name=entry.name))
        return result


def load_setup_commands(project_root: Path) -> list[SetupCommand]:
    """Read the project's setup commands; any problem yields []."""
    config_path = project_root / SANDBOX_CONFIG_RELPATH
    if not config_path.exists():
        logger.debug("No project sandbox config, skipping setup commands", path=str(config_path))
        return []

    try:
        data = json.loads(config_path.read_text())
    except json.JSONDecodeError as exc:
        logger.warning(
            "Invalid JSON in project sandbox config", path=str(config_path), error=str(exc)
        )
        return []
    except OSError as exc:
        logger.warning(
            "Error reading project sandbox config", path=str(config_path), error=str(exc)
        )
        return []

    try:
        config = ProjectSandboxConfig.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "Invalid project sandbox config structure, skipping setup commands",
            path=str(config_path),
            error=str(exc),
        )
        return []

    commands = config.setup_commands()
    if commands:
        logger.info("Found setup commands", count=len(commands), path=str(config_path))
    return commands
