"""Plugin system for claude-sandbox.

Plugins supply strategies the session pipeline treats as pluggable, such as
generating commit messages for the session worktree. Built on pluggy.

Third-party plugins register under the "claude_sandbox" entry-point group in
their pyproject.toml.

Usage:
    from claude_sandbox.plugin import get_plugin_manager

    pm = get_plugin_manager()
    committed = pm.hook.sandbox_commit_changes(worktree=ref)
"""

from __future__ import annotations

import subprocess

import pluggy

from claude_sandbox.logger import logger
from claude_sandbox.plugin.hookspecs import SandboxSpec
from claude_sandbox.types import WorktreeRef

__all__ = [
    "get_plugin_manager",
    "hookimpl",
    "plugin_commit_strategy",
]

hookimpl = pluggy.HookimplMarker("claude_sandbox")


def get_plugin_manager(*, load_entrypoints: bool = True) -> pluggy.PluginManager:
    """Create the plugin manager and discover entry-point plugins."""
    pm = pluggy.PluginManager("claude_sandbox")
    pm.add_hookspecs(SandboxSpec)

    if load_entrypoints:
        discovered = pm.load_setuptools_entrypoints("claude_sandbox")
        if discovered:
            logger.info("Discovered third-party plugins", count=discovered)

    # Entry points can hand back classes instead of instances; those fail
    # at hook invocation with a missing ``self``.
    for plugin in list(pm.get_plugins()):
        if isinstance(plugin, type):
            plugin_name = pm.get_name(plugin) or plugin.__name__
            pm.unregister(plugin=plugin)
            logger.warning("Unregistered invalid class-based plugin object", plugin=plugin_name)

    logger.debug("Plugin manager ready", plugins=[pm.get_name(p) for p in pm.get_plugins()])
    return pm


def plugin_commit_strategy(pm: pluggy.PluginManager):
    """Adapt the ``sandbox_commit_changes`` hook to a worktree commit strategy.

    Plugin errors degrade to the fallback commit instead of failing the session.
    """

    def _strategy(ref: WorktreeRef) -> bool:
        try:
            return bool(pm.hook.sandbox_commit_changes(worktree=ref))
        except (OSError, subprocess.SubprocessError, RuntimeError, ValueError) as exc:
            logger.warning("Commit strategy plugin failed, using fallback", error=str(exc))
            return False

    return _strategy
