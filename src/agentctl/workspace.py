"""Wires the orchestrator components from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import AgentctlSettings, get_settings
from .context import ContextMaterializer
from .git import Git, GitBackend
from .mirrors import MirrorCache, RepoCatalog
from .registry import AgentRegistry
from .runner import CommandRunner
from .sessions import SessionController, WindowManager
from .tmux import Multiplexer, Tmux
from .worktrees import WorktreeProvisioner


def configure_logging(level: str) -> None:
    """Configure root logging for the agentctl CLI."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


@dataclass(slots=True)
class Workspace:
    settings: AgentctlSettings
    catalog: RepoCatalog
    mirrors: MirrorCache
    windows: WindowManager
    registry: AgentRegistry
    materializer: ContextMaterializer
    worktrees: WorktreeProvisioner
    sessions: SessionController


def build_workspace(
    settings: Optional[AgentctlSettings] = None,
    *,
    git: GitBackend | None = None,
    multiplexer: Multiplexer | None = None,
    runner: CommandRunner | None = None,
) -> Workspace:
    """Instantiate every component against the configured paths and session."""

    settings = settings or get_settings()
    runner = runner or CommandRunner()
    git = git or Git(runner)
    multiplexer = multiplexer or Tmux(runner, timeout=settings.tmux_timeout)

    catalog = RepoCatalog(settings.repo_file)
    mirrors = MirrorCache(settings.mirrors_path, catalog, git)
    windows = WindowManager(
        multiplexer,
        session_name=settings.session_name,
        hub_window=settings.hub_window,
        login_shell=settings.login_shell,
    )
    registry = AgentRegistry(
        settings.agents_base,
        reserved_names=settings.reserved_names,
        context_filenames=settings.context_filenames,
        windows=windows,
        mirrors=mirrors,
    )
    materializer = ContextMaterializer(registry, settings.context_filenames)
    worktrees = WorktreeProvisioner(
        registry,
        mirrors,
        materializer,
        base_ref_candidates=settings.base_ref_candidates,
    )
    sessions = SessionController(windows, registry, materializer)
    return Workspace(
        settings=settings,
        catalog=catalog,
        mirrors=mirrors,
        windows=windows,
        registry=registry,
        materializer=materializer,
        worktrees=worktrees,
        sessions=sessions,
    )


__all__ = ["Workspace", "build_workspace", "configure_logging"]
