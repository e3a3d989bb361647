"""Per-agent worktrees checked out from the shared mirrors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .context import ContextMaterializer
from .errors import ConflictError, NotFoundError, UsageError
from .mirrors import MirrorCache
from .registry import AgentRegistry, validate_name

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorktreeResult:
    agent: str
    repo: str
    path: Path
    branch: str
    base_ref: str | None
    created: bool
    context_written: bool = False


def validate_branch(branch: str) -> str:
    if (
        not branch
        or branch.startswith("-")
        or branch.startswith("/")
        or branch.endswith("/")
        or branch.endswith(".lock")
        or ".." in branch
        or "@{" in branch
        or any(ch.isspace() or ch in "~^:?*[\\" for ch in branch)
    ):
        raise UsageError(f"Invalid branch name: {branch!r}")
    return branch


class WorktreeProvisioner:
    """Creates ``<agent>/work/<repo>`` checkouts bound to a branch."""

    def __init__(
        self,
        registry: AgentRegistry,
        mirrors: MirrorCache,
        materializer: ContextMaterializer,
        *,
        base_ref_candidates: Iterable[str],
    ) -> None:
        self.registry = registry
        self.mirrors = mirrors
        self.materializer = materializer
        self.base_ref_candidates = tuple(base_ref_candidates)

    def select_base_ref(self, mirror: Path) -> str:
        for candidate in self.base_ref_candidates:
            if self.mirrors.git.ref_exists(mirror, candidate):
                return candidate
        names = ", ".join(self.base_ref_candidates)
        raise NotFoundError(
            f"Could not find a base branch ({names}) in {mirror.name} mirror. "
            f"Run: git -C '{mirror}' show-ref --heads | head"
        )

    def ensure(self, agent: str, repo: str, branch: str) -> WorktreeResult:
        """Materialize the worktree unless one is already present at the target path.

        An existing branch named ``branch`` is reset to the selected base ref.
        """

        validate_name(repo, kind="repo")
        validate_branch(branch)
        paths = self.registry.ensure(agent)
        target = paths.work / repo

        if (target / ".git").exists():
            logger.info("Worktree already exists: %s", target)
            return WorktreeResult(agent, repo, target, branch, None, created=False)
        if target.exists() and (not target.is_dir() or any(target.iterdir())):
            raise ConflictError(
                f"{target} exists but is not a git worktree (interrupted run?); remove it and retry"
            )

        with self.mirrors.lock(repo):
            mirror = self.mirrors.ensure_fresh(repo)
            base_ref = self.select_base_ref(mirror)
            logger.info("Creating worktree: agent=%s repo=%s branch=%s base=%s", agent, repo, branch, base_ref)
            self.mirrors.git.worktree_add(mirror, target, branch, base_ref)

        result = WorktreeResult(agent, repo, target, branch, base_ref, created=True)
        result.context_written = self.materializer.try_write(agent, target)
        return result


__all__ = ["WorktreeProvisioner", "WorktreeResult", "validate_branch"]
