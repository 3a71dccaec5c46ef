"""Host-side staging of the config bundle and setup batch, plus mount/env construction."""

from __future__ import annotations

import json
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from claude_sandbox.bundle import is_safe_relative_key
from claude_sandbox.config import get_settings
from claude_sandbox.container_runner import setup_runner
from claude_sandbox.logger import logger
from claude_sandbox.types import ConfigBundle, SetupCommand, VolumeMount

SETUP_BATCH_NAME = "setup.json"
SETUP_RUNNER_NAME = "setup_runner.py"
# Presence of this variable tells the entrypoint a batch is mounted
SETUP_BATCH_ENV = "SANDBOX_SETUP_BATCH"
CAPTURE_DIR_ENV = "SANDBOX_CAPTURE_DIR"


@dataclass
class StagedSession:
    """Host directories backing a container's bind mounts."""

    root: Path
    config_dir: Path
    global_settings_file: Path | None = None
    setup_dir: Path | None = None
    capture_dir: Path | None = None


def _stage_config(bundle: ConfigBundle, target: Path) -> None:
    target.mkdir(parents=True, exist_ok=True)
    for key, content in bundle.files.items():
        if not is_safe_relative_key(key):
            logger.warning("Refusing to stage config file with unsafe path", path=key)
            continue
        dest = target / key
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)


def _stage_setup_batch(commands: list[SetupCommand], setup_dir: Path) -> None:
    setup_dir.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(Path(setup_runner.__file__), setup_dir / SETUP_RUNNER_NAME)
    batch = {"commands": [c.to_dict() for c in commands]}
    (setup_dir / SETUP_BATCH_NAME).write_text(json.dumps(batch, indent=2))


def stage_session(
    name: str,
    bundle: ConfigBundle,
    commands: list[SetupCommand],
    staging_root: Path | None = None,
) -> StagedSession:
    """Materialize everything the container mounts into one fresh host directory."""
    root = Path(tempfile.mkdtemp(prefix=f"claude-sandbox-{name}-", dir=staging_root))
    config_dir = root / "claude"
    _stage_config(bundle, config_dir)

    global_settings_file = None
    if bundle.global_settings is not None:
        global_settings_file = root / "claude.json"
        global_settings_file.write_bytes(bundle.global_settings)

    staged = StagedSession(
        root=root, config_dir=config_dir, global_settings_file=global_settings_file
    )
    if commands:
        staged.setup_dir = root / "setup"
        staged.capture_dir = root / "capture"
        _stage_setup_batch(commands, staged.setup_dir)
        staged.capture_dir.mkdir(parents=True, exist_ok=True)

    logger.debug(
        "Staged session files",
        root=str(root),
        config_files=len(bundle.files),
        setup_commands=len(commands),
    )
    return staged


def _build_volume_mounts(isolated_root: Path, staged: StagedSession) -> list[VolumeMount]:
    """Mount list for the sandbox container.

    The workspace and config are read-write; the setup directory is
    read-only. The capture directory is the only channel the container uses
    to hand data back to the host.
    """
    s = get_settings()
    mounts = [
        VolumeMount(str(isolated_root), s.WORKSPACE_PATH, readonly=False),
        VolumeMount(str(staged.config_dir), s.container_config_path, readonly=False),
    ]
    if staged.global_settings_file is not None:
        mounts.append(
            VolumeMount(
                str(staged.global_settings_file), s.container_global_settings_path, readonly=False
            )
        )
    if staged.setup_dir is not None:
        mounts.append(VolumeMount(str(staged.setup_dir), s.SETUP_DIR, readonly=True))
    if staged.capture_dir is not None:
        mounts.append(VolumeMount(str(staged.capture_dir), s.CAPTURE_DIR, readonly=False))
    return mounts


def _build_env(env_vars: list[str], has_setup_commands: bool) -> list[str]:
    """Container env: fixed paths first, then the user's settings env, then the batch marker."""
    s = get_settings()
    env = [
        f"WORKSPACE_PATH={s.WORKSPACE_PATH}",
        f"CLAUDE_CONFIG_PATH={s.container_config_path}",
    ]
    env.extend(env_vars)
    if has_setup_commands:
        env.append(f"{SETUP_BATCH_ENV}={s.SETUP_DIR}/{SETUP_BATCH_NAME}")
        env.append(f"{CAPTURE_DIR_ENV}={s.CAPTURE_DIR}")
    return env
