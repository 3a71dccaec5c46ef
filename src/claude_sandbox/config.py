"""Centralized configuration: Pydantic BaseSettings with TOML + dotenv sources.

User settings live in ~/.config/claude-sandbox/config.toml. Environment
variables override them using the ``CLAUDE_SANDBOX_`` prefix and ``__`` as the
nested delimiter (e.g. ``CLAUDE_SANDBOX_CONTAINER__IMAGE``).

Priority (highest wins): init args > env vars > .env > config.toml

Usage::

    from claude_sandbox.config import get_settings

    s = get_settings()
    print(s.container.image)
    print(s.claude_home)
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

USER_CONFIG_FILE = Path.home() / ".config" / "claude-sandbox" / "config.toml"

# Build context shipped with the package (Dockerfile + entrypoint.sh)
PACKAGED_BUILD_CONTEXT = Path(__file__).parent / "container_runner" / "image"

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in config.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models: reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class ContainerConfig(_StrictModel):
    image: str = "claude-sandbox:latest"
    build_context: str | None = None  # None → packaged image/ directory
    dockerfile: str = "Dockerfile"
    watched_file: str = "entrypoint.sh"  # rebuild when newer than the image
    user: str = "claude"
    home: str = "/home/claude"
    network: str = "bridge"
    readiness_timeout_ms: int = 300000  # 5 minutes
    readiness_poll_ms: int = 1000
    setup_mode: Literal["entrypoint", "exec"] = "entrypoint"

    @field_validator("readiness_poll_ms")
    @classmethod
    def clamp_poll(cls, v: int) -> int:
        return max(50, v)


class ClaudeConfig(_StrictModel):
    config_dir: str | None = None  # None → ~/.claude
    global_settings_file: str | None = None  # None → ~/.claude.json
    settings_name: str = "settings.json"
    hook_denylist: list[str] = ["afplay", "osascript"]


class WorktreeConfig(_StrictModel):
    branch_prefix: str = "sandbox/"
    dir_suffix: str = "-sandbox"


class EnvironmentConfig(_StrictModel):
    # Substrings of variable names re-injected into the interactive shell
    propagate_patterns: list[str] = [
        "PATH",
        "VIRTUAL_ENV",
        "PYTHON",
        "NODE",
        "NVM",
        "JAVA",
        "GO",
        "CARGO",
        "RUST",
        "CONDA",
        "UV_",
    ]


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file=USER_CONFIG_FILE,
        env_file=".env",
        env_prefix="CLAUDE_SANDBOX_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    container: ContainerConfig = ContainerConfig()
    claude: ClaudeConfig = ClaudeConfig()
    worktree: WorktreeConfig = WorktreeConfig()
    environment: EnvironmentConfig = EnvironmentConfig()
    logging: LoggingConfig = LoggingConfig()

    # Fixed in-container paths (must match the image's entrypoint.sh)
    WORKSPACE_PATH: ClassVar[str] = "/workspace"
    SETUP_DIR: ClassVar[str] = "/opt/sandbox"
    CAPTURE_DIR: ClassVar[str] = "/sandbox/capture"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > config.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # --- Computed properties ---

    @cached_property
    def home_dir(self) -> Path:
        return Path.home()

    @cached_property
    def claude_home(self) -> Path:
        if self.claude.config_dir:
            return Path(self.claude.config_dir).expanduser().resolve()
        return self.home_dir / ".claude"

    @cached_property
    def global_settings_path(self) -> Path:
        if self.claude.global_settings_file:
            return Path(self.claude.global_settings_file).expanduser().resolve()
        return self.home_dir / ".claude.json"

    @cached_property
    def build_context(self) -> Path:
        if self.container.build_context:
            return Path(self.container.build_context).expanduser().resolve()
        return PACKAGED_BUILD_CONTEXT

    @cached_property
    def readiness_timeout(self) -> float:
        return self.container.readiness_timeout_ms / 1000

    @cached_property
    def readiness_poll_interval(self) -> float:
        return self.container.readiness_poll_ms / 1000

    @property
    def container_config_path(self) -> str:
        """In-container location of the staged configuration bundle."""
        return f"{self.container.home}/.claude"

    @property
    def container_global_settings_path(self) -> str:
        return f"{self.container.home}/.claude.json"


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
