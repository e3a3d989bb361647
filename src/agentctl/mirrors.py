"""Shared bare-mirror cache, one clone per repo name."""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import AgentctlError, NotFoundError
from .git import GitBackend
from .locks import advisory_lock, lock_path
from .registry import validate_name

logger = logging.getLogger(__name__)


class RepoCatalog:
    """Reads the repo-name to clone-URL mapping document.

    One entry per line: ``<name> <url>``. Lines starting with ``#`` or with
    fewer than two columns are ignored; the first entry for a name wins.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def entries(self) -> list[tuple[str, str]]:
        if not self.path.is_file():
            raise NotFoundError(f"Missing repo file: {self.path}")
        entries: list[tuple[str, str]] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            columns = line.split()
            if len(columns) < 2 or columns[0].startswith("#"):
                continue
            entries.append((columns[0], columns[1]))
        return entries

    def names(self) -> list[str]:
        return [name for name, _ in self.entries()]

    def resolve_url(self, repo: str) -> str:
        for name, url in self.entries():
            if name == repo:
                return url
        raise NotFoundError(f"Unknown repo: {repo} (add it to {self.path})")


class MirrorCache:
    """Keeps ``<root>/<repo>.git`` mirror clones fresh for worktree creation."""

    def __init__(self, root: Path, catalog: RepoCatalog, git: GitBackend) -> None:
        self.root = Path(root)
        self.catalog = catalog
        self.git = git

    def mirror_path(self, repo: str) -> Path:
        return self.root / f"{validate_name(repo, kind='repo')}.git"

    def lock(self, repo: str):
        """Advisory lock serializing fetch and worktree changes for one mirror."""

        return advisory_lock(lock_path(self.root, repo))

    def list_mirrors(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(path for path in self.root.glob("*.git") if path.is_dir())

    def ensure_fresh(self, repo: str) -> Path:
        """Clone the mirror if missing, otherwise prune and fetch it.

        Callers must hold :meth:`lock` for ``repo``.
        """

        mirror = self.mirror_path(repo)
        if not mirror.exists():
            url = self.catalog.resolve_url(repo)
            logger.info("Mirror missing, creating: %s", repo)
            self.git.clone_mirror(url, mirror)
        else:
            logger.info("Refreshing mirror: %s", repo)
            self.git.remote_update_prune(mirror)
        return mirror

    def prune_all_worktrees(self) -> int:
        """Drop stale worktree records in every mirror; failures are logged and skipped."""

        pruned = 0
        for mirror in self.list_mirrors():
            try:
                self.git.worktree_prune(mirror)
            except AgentctlError as exc:
                logger.warning("worktree prune failed for %s: %s", mirror, exc)
                continue
            pruned += 1
        return pruned

    def repair_worktrees(self, work_root: Path) -> int:
        """Re-link worktrees after their agent directory moved; best-effort."""

        repaired = 0
        if not work_root.is_dir():
            return repaired
        for checkout in sorted(work_root.iterdir()):
            if not (checkout / ".git").exists():
                continue
            mirror = self.root / f"{checkout.name}.git"
            if not mirror.is_dir():
                continue
            try:
                self.git.worktree_repair(mirror, checkout)
            except AgentctlError as exc:
                logger.warning("worktree repair failed for %s: %s", checkout, exc)
                continue
            repaired += 1
        return repaired


__all__ = ["MirrorCache", "RepoCatalog"]
