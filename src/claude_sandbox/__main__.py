"""Entry point for `python -m claude_sandbox` / the `claude-sandbox` script.

Usage:
    claude-sandbox [PROJECT_PATH] [-n NAME] [-w WORKTREE_PATH]
                   [--no-worktree] [--preserve-container] [-v]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-sandbox",
        description="Run Claude in an isolated container on its own git worktree",
    )
    parser.add_argument(
        "project_path",
        nargs="?",
        default=".",
        help="Project directory to sandbox (default: current directory)",
    )
    parser.add_argument("-n", "--name", help="Container name (default: claude-sandbox-<ms>)")
    parser.add_argument(
        "-w", "--worktree-path", help="Where to create the worktree (default: next to the project)"
    )
    parser.add_argument(
        "--no-worktree",
        action="store_true",
        help="Mount the project directly instead of a fresh worktree",
    )
    parser.add_argument(
        "--preserve-container",
        action="store_true",
        help="Leave the container running after the shell exits",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)

    from claude_sandbox.config import get_settings
    from claude_sandbox.logger import set_level
    from claude_sandbox.orchestrator import SessionOptions, SessionOrchestrator
    from claude_sandbox.plugin import get_plugin_manager, plugin_commit_strategy
    from claude_sandbox.runtime.docker import DockerClient

    set_level("DEBUG" if args.verbose else get_settings().logging.level)

    options = SessionOptions(
        project_path=Path(args.project_path),
        name=args.name,
        worktree_path=args.worktree_path,
        use_worktree=not args.no_worktree,
        preserve_container=args.preserve_container,
    )
    orchestrator = SessionOrchestrator(
        options,
        DockerClient(),
        commit_strategy=plugin_commit_strategy(get_plugin_manager()),
    )
    return orchestrator.run()


if __name__ == "__main__":
    sys.exit(main())
