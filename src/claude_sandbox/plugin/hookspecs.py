"""Pluggy hook specifications for claude-sandbox plugins.

All hooks use the "claude_sandbox" namespace and are validated by pluggy at
registration time.
"""

from __future__ import annotations

import pluggy

from claude_sandbox.types import WorktreeRef

hookspec = pluggy.HookspecMarker("claude_sandbox")


class SandboxSpec:
    """Hook specifications for claude-sandbox plugins."""

    @hookspec(firstresult=True)
    def sandbox_commit_changes(self, worktree: WorktreeRef) -> bool | None:
        """Stage and commit pending worktree changes with a generated message.

        Called after the interactive session ends, only when the worktree has
        pending changes. The first plugin returning a non-None value wins.

        Args:
            worktree: The session worktree (path + branch).

        Returns:
            True if the plugin staged and committed everything itself.
            False or None to let claude-sandbox fall back to ``git add -A``
            and a timestamped commit message.
        """
