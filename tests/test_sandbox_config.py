"""Tests for per-project setup commands (.claude-sandbox/settings.json)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from claude_sandbox.sandbox_config import ProjectSandboxConfig, load_setup_commands
from claude_sandbox.types import SetupCommand


def _write(project: Path, content: str) -> None:
    cfg = project / ".claude-sandbox"
    cfg.mkdir(parents=True, exist_ok=True)
    (cfg / "settings.json").write_text(content)


class TestLoadSetupCommands:
    def test_missing_file_means_no_commands(self, tmp_path: Path):
        assert load_setup_commands(tmp_path) == []

    def test_strings_and_records(self, tmp_path: Path):
        _write(
            tmp_path,
            json.dumps({"commands": ["npm ci", {"name": "venv", "run": "python3 -m venv .venv"}]}),
        )
        assert load_setup_commands(tmp_path) == [
            SetupCommand(index=1, run="npm ci"),
            SetupCommand(index=2, run="python3 -m venv .venv", name="venv"),
        ]

    def test_no_commands_key(self, tmp_path: Path):
        _write(tmp_path, "{}")
        assert load_setup_commands(tmp_path) == []

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            '{"commands": []}',
            '{"commands": "npm ci"}',
            '{"commands": [""]}',
            '{"commands": [{"run": "  "}]}',
            '{"commands": [{"run": "x", "shell": "zsh"}]}',
            '{"commands": [42]}',
        ],
    )
    def test_invalid_config_is_never_fatal(self, tmp_path: Path, content: str):
        _write(tmp_path, content)
        assert load_setup_commands(tmp_path) == []


class TestSetupCommand:
    def test_label_falls_back_to_run(self):
        assert SetupCommand(index=1, run="make").label == "make"
        assert SetupCommand(index=1, run="make", name="Build").label == "Build"

    def test_batch_record(self):
        cmd = ProjectSandboxConfig.model_validate({"commands": ["make"]}).setup_commands()[0]
        assert cmd.to_dict() == {"index": 1, "name": "make", "run": "make"}
