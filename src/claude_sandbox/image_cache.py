"""Base image freshness check: build once, rebuild when the entrypoint changes.

A single-key cache: the key is the configured image name, and the only
staleness signal is the watched build-context file being modified after
the image was created.
"""

from __future__ import annotations

import subprocess
from datetime import datetime, timezone
from pathlib import Path

from claude_sandbox.config import get_settings
from claude_sandbox.errors import ImageBuildFailed
from claude_sandbox.logger import logger
from claude_sandbox.runtime.docker import DockerClient, DockerCommandError
from claude_sandbox.types import ImageDescriptor


def _mtime_utc(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def is_stale(image: ImageDescriptor, watched_file: Path) -> bool:
    """True iff *watched_file* was modified strictly after the image was created.

    A missing watched file never makes the image stale.
    """
    if not watched_file.exists():
        return False
    return _mtime_utc(watched_file) > image.created_at


class ImageCache:
    """Ensures the sandbox base image exists and is not older than its entrypoint."""

    def __init__(
        self,
        client: DockerClient,
        build_context: Path | None = None,
        dockerfile: str | None = None,
        watched_file: str | None = None,
    ) -> None:
        s = get_settings()
        self.client = client
        self.build_context = build_context or s.build_context
        self.dockerfile = dockerfile or s.container.dockerfile
        self.watched_file = watched_file or s.container.watched_file

    @property
    def watched_path(self) -> Path:
        return self.build_context / self.watched_file

    def ensure(self, image: str) -> bool:
        """Build *image* if absent or stale. Returns True if a build ran.

        Raises:
            ImageBuildFailed: docker build failed (the session aborts)
        """
        existing = self.client.inspect_image(image)
        if existing is None:
            logger.info("Building base image", image=image, context=str(self.build_context))
        elif is_stale(existing, self.watched_path):
            logger.info(
                "Base image is older than its entrypoint, rebuilding",
                image=image,
                created_at=existing.created_at.isoformat(),
                watched=str(self.watched_path),
            )
        else:
            logger.debug("Using existing image", image=image)
            return False

        self._build(image)
        return True

    def _build(self, image: str) -> None:
        dockerfile = self.build_context / self.dockerfile
        if not dockerfile.exists():
            raise ImageBuildFailed(f"Image '{image}' needs a build but {dockerfile} does not exist")
        try:
            self.client.build_image(image, str(self.build_context), str(dockerfile))
        except (DockerCommandError, OSError, subprocess.SubprocessError) as exc:
            raise ImageBuildFailed(f"Failed to build image '{image}': {exc}") from exc
        logger.info("Docker image built", image=image)
