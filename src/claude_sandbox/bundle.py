"""User configuration bundling.

Collects the user's ~/.claude tree into an in-memory ConfigBundle that the
container lifecycle stages and mounts. The settings document is rewritten
for Linux on the way (hooks calling macOS-only tools are dropped) and is the
source of the environment variables passed into the container.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from claude_sandbox.config import get_settings
from claude_sandbox.errors import ConfigDirectoryMissing
from claude_sandbox.logger import logger
from claude_sandbox.types import ConfigBundle


def is_safe_relative_key(key: str) -> bool:
    """True for a normalized relative posix path without ``..`` or ``.`` segments."""
    if not key or key.startswith("/"):
        return False
    return all(part not in ("..", ".", "") for part in key.split("/"))


def _format_env_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value)


def extract_env_vars(settings_bytes: bytes | None) -> list[str]:
    """``KEY=VALUE`` entries from the settings document's ``env`` mapping.

    Best-effort: unparseable documents or a non-mapping ``env`` give [].
    """
    if not settings_bytes:
        return []
    try:
        settings = json.loads(settings_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Could not parse settings for env vars", error=str(exc))
        return []
    if not isinstance(settings, dict):
        return []
    env = settings.get("env")
    if not isinstance(env, dict):
        return []
    return [f"{key}={_format_env_value(value)}" for key, value in env.items()]


def filter_hooks(hooks: Any, denylist: list[str]) -> Any:
    """Drop every hook entry whose ``command`` contains a denylisted substring.

    Structure around removed entries (event names, matcher groups) is kept.
    """
    if isinstance(hooks, list):
        kept = []
        for item in hooks:
            if _is_denied_command(item, denylist):
                continue
            kept.append(filter_hooks(item, denylist))
        return kept
    if isinstance(hooks, dict):
        return {
            key: filter_hooks(value, denylist)
            for key, value in hooks.items()
            if not _is_denied_command(value, denylist)
        }
    return hooks


def _is_denied_command(node: Any, denylist: list[str]) -> bool:
    if not isinstance(node, dict):
        return False
    command = node.get("command")
    return isinstance(command, str) and any(bad in command for bad in denylist)


def transform_settings(settings_bytes: bytes, denylist: list[str]) -> bytes:
    """Rewrite the settings document for Linux. Falls back to the input on any error."""
    try:
        settings = json.loads(settings_bytes.decode("utf-8"))
        if isinstance(settings, dict) and "hooks" in settings:
            settings["hooks"] = filter_hooks(settings["hooks"], denylist)
        return json.dumps(settings, indent=2, ensure_ascii=False).encode("utf-8")
    except (UnicodeDecodeError, ValueError, TypeError) as exc:
        logger.warning("Failed to transform settings", error=str(exc))
        return settings_bytes


class ConfigBundler:
    """Collects a configuration directory plus the global settings file."""

    def __init__(
        self,
        config_dir: Path,
        global_settings_path: Path | None = None,
        *,
        settings_name: str = "settings.json",
        hook_denylist: list[str] | None = None,
    ) -> None:
        self.config_dir = config_dir
        self.global_settings_path = global_settings_path
        self.settings_name = settings_name
        self.hook_denylist = list(hook_denylist or [])

    @classmethod
    def from_settings(cls) -> ConfigBundler:
        s = get_settings()
        return cls(
            s.claude_home,
            s.global_settings_path,
            settings_name=s.claude.settings_name,
            hook_denylist=s.claude.hook_denylist,
        )

    def collect(self) -> ConfigBundle:
        """Read every regular file under the config dir into a bundle.

        Symlinked files are read through their target; symlinked directories
        are not descended (no cycles). Broken links are skipped.

        Raises:
            ConfigDirectoryMissing: the config dir does not exist
        """
        if not self.config_dir.is_dir():
            raise ConfigDirectoryMissing(f"Claude config directory not found: {self.config_dir}")

        logger.debug("Collecting configs", root=str(self.config_dir))
        files: dict[str, bytes] = {}
        for dirpath, dirnames, filenames in os.walk(self.config_dir, followlinks=False):
            dirnames.sort()
            for filename in sorted(filenames):
                full_path = Path(dirpath) / filename
                if not full_path.is_file():
                    continue
                key = full_path.relative_to(self.config_dir).as_posix()
                if not is_safe_relative_key(key):
                    logger.warning("Skipping config file with unsafe path", path=key)
                    continue
                try:
                    files[key] = full_path.read_bytes()
                except OSError as exc:
                    logger.warning("Failed to read config file", path=key, error=str(exc))

        if self.settings_name in files:
            files[self.settings_name] = transform_settings(
                files[self.settings_name], self.hook_denylist
            )
            logger.debug("Transformed settings for Linux", file=self.settings_name)

        global_settings = self._read_global_settings()
        logger.info(
            "Collected configuration files",
            count=len(files),
            global_settings=global_settings is not None,
        )
        return ConfigBundle(files=files, global_settings=global_settings)

    def _read_global_settings(self) -> bytes | None:
        path = self.global_settings_path
        if path is None or not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning("Failed to read global settings", path=str(path), error=str(exc))
            return None

    def env_vars(self, bundle: ConfigBundle) -> list[str]:
        return extract_env_vars(bundle.get(self.settings_name))
