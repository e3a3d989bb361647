"""Agent registry: per-agent directories, overlay files, rename and delete."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Iterable, Protocol

from ..errors import CancelledError, ConflictError, NotFoundError, UsageError
from ..locks import LOCK_DIRNAME, agent_locks
from .models import AgentPaths, DeletePlan, DeleteResult, RenameResult, validate_name

logger = logging.getLogger(__name__)


class WindowOps(Protocol):
    """Window operations the registry needs when renaming or deleting agents."""

    def window_exists(self, name: str) -> bool:
        ...

    def rename_window_if_exists(self, old: str, new: str, work_dir: Path) -> bool:
        ...

    def kill_window_if_exists(self, name: str) -> bool:
        ...

    def describe(self, name: str) -> str:
        ...


class MirrorOps(Protocol):
    def prune_all_worktrees(self) -> int:
        ...

    def repair_worktrees(self, work_root: Path) -> int:
        ...


def default_overlay(paths: AgentPaths, global_context: Path, context_filenames: Iterable[str]) -> str:
    """Initial per-agent overlay written by :meth:`AgentRegistry.ensure`."""

    generated = "\n".join(f"- {filename}" for filename in context_filenames)
    return (
        f"# Agent: {paths.name}\n"
        "\n"
        "This file is the per-agent overlay. It is combined with:\n"
        f"- {global_context} (global host context)\n"
        "\n"
        "Generated instruction files are written into each repo worktree root as:\n"
        f"{generated}\n"
        "\n"
        "## Responsibilities\n"
        "- General purpose coding agent unless the user assigns a narrower scope.\n"
        "\n"
        "## Operating rules\n"
        f"- Work only inside: {paths.work}/<repo>\n"
        "- Prefer small commits and clear messages\n"
        "- Ask for confirmation before destructive actions, infra changes, migrations, or data backfills\n"
        f"- Coordinate conflicts via: {paths.root.parent / 'conflicts'}\n"
    )


class AgentRegistry:
    """Tracks agents as directories under a base path."""

    def __init__(
        self,
        base: Path,
        *,
        reserved_names: Iterable[str] = ("hub", "ctrl"),
        context_filenames: Iterable[str] = ("AGENTS.md", "CLAUDE.md", "GEMINI.md"),
        windows: WindowOps | None = None,
        mirrors: MirrorOps | None = None,
    ) -> None:
        self.base = Path(base)
        self.reserved_names = frozenset(reserved_names)
        self._context_filenames = tuple(context_filenames)
        self._windows = windows
        self._mirrors = mirrors

    @property
    def global_context(self) -> Path:
        return self.base / "CONTEXT.md"

    def paths(self, name: str) -> AgentPaths:
        return AgentPaths.under(self.base, validate_name(name))

    def exists(self, name: str) -> bool:
        return (self.base / name).is_dir()

    def ensure(self, name: str) -> AgentPaths:
        """Create the agent's directories and default overlay; safe to repeat."""

        self.refuse_reserved(name, action="create")
        paths = self.paths(name)
        paths.work.mkdir(parents=True, exist_ok=True)
        paths.logs.mkdir(parents=True, exist_ok=True)
        if not paths.overlay.exists():
            paths.overlay.write_text(
                default_overlay(paths, self.global_context, self._context_filenames), encoding="utf-8"
            )
            logger.debug("wrote default overlay %s", paths.overlay)
        return paths

    def list(self) -> list[str]:
        """Agent directories under the base path; entries that are not valid agent names are skipped."""

        if not self.base.is_dir():
            return []
        names = []
        for entry in self.base.iterdir():
            if not entry.is_dir() or entry.name.startswith(".") or entry.name == LOCK_DIRNAME:
                continue
            try:
                names.append(validate_name(entry.name))
            except UsageError:
                logger.debug("ignoring non-agent directory %s", entry)
        return sorted(names)

    def refuse_reserved(self, *names: str, action: str) -> None:
        for name in names:
            if name in self.reserved_names:
                reserved = "/".join(sorted(self.reserved_names))
                raise ConflictError(f"Refusing to {action} reserved name '{name}' ({reserved}).")

    def _window_exists(self, name: str) -> bool:
        return self._windows is not None and self._windows.window_exists(name)

    def rename(self, old: str, new: str) -> RenameResult:
        """Move an agent's directory and live window to a new name."""

        self.refuse_reserved(old, new, action="rename from/to")
        result = RenameResult(old=old, new=new)
        if old == new:
            return result

        old_paths = self.paths(old)
        new_paths = self.paths(new)

        with agent_locks(self.base, old, new):
            if new_paths.root.exists():
                raise ConflictError(f"Target agent name already exists on disk: {new_paths.root}")

            old_live = self._window_exists(old)
            if old_live and self._window_exists(new):
                raise ConflictError(f"Target tmux window name already exists: {self._windows.describe(new)}")
            has_dir = old_paths.root.is_dir()
            if not old_live and not has_dir:
                raise NotFoundError(f"No such agent on disk or in tmux: {old}")

            if old_live:
                result.renamed_window = self._windows.rename_window_if_exists(old, new, new_paths.work)
            else:
                result.warnings.append(f"No live tmux window for '{old}'; renaming on disk only.")

            if has_dir:
                old_paths.root.rename(new_paths.root)
                result.moved_directory = True
                if self._mirrors is not None:
                    self._mirrors.repair_worktrees(new_paths.work)
            else:
                result.warnings.append(f"Warning: no workspace directory found for '{old}' at {old_paths.root}")

        for warning in result.warnings:
            logger.warning(warning)
        return result

    def plan_delete(self, name: str) -> DeletePlan:
        paths = self.paths(name)
        return DeletePlan(
            name=name,
            directory=paths.root if paths.root.is_dir() else None,
            window=self._windows.describe(name) if self._window_exists(name) else None,
        )

    def delete(
        self,
        name: str,
        *,
        force: bool = False,
        confirm: Callable[[DeletePlan], str] | None = None,
    ) -> DeleteResult:
        """Remove an agent's directory and window, then prune stale worktree records.

        Without ``force`` the ``confirm`` callback must return the exact agent
        name; anything else raises CancelledError and nothing is touched.
        """

        self.refuse_reserved(name, action="delete")
        validate_name(name)
        result = DeleteResult(name=name)

        with agent_locks(self.base, name):
            plan = self.plan_delete(name)
            if not force:
                if plan.empty:
                    logger.info("No such agent on disk or in tmux: %s", name)
                    return result
                typed = confirm(plan) if confirm is not None else None
                if typed is None or typed.strip() != name:
                    raise CancelledError("Cancelled.")

            if self._windows is not None:
                result.killed_window = self._windows.kill_window_if_exists(name)
            if plan.directory is not None:
                shutil.rmtree(plan.directory)
                result.removed_directory = True

        if self._mirrors is not None:
            result.pruned_mirrors = self._mirrors.prune_all_worktrees()
        return result


__all__ = ["AgentRegistry", "MirrorOps", "WindowOps", "default_overlay"]
