"""Source-control port: mirror clones, fetches and worktrees."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .errors import ExternalToolError
from .runner import CommandRunner

logger = logging.getLogger(__name__)


class GitBackend(Protocol):
    """Minimal git surface used by the mirror cache and worktree provisioner."""

    def clone_mirror(self, url: str, dest: Path) -> None:
        ...

    def remote_update_prune(self, mirror: Path) -> None:
        ...

    def ref_exists(self, mirror: Path, ref: str) -> bool:
        ...

    def worktree_add(self, mirror: Path, path: Path, branch: str, base_ref: str) -> None:
        ...

    def worktree_prune(self, mirror: Path) -> None:
        ...

    def worktree_repair(self, mirror: Path, path: Path) -> None:
        ...

    def list_worktrees(self, mirror: Path) -> list[Path]:
        ...


class Git:
    """GitBackend that shells out to the git executable."""

    def __init__(self, runner: CommandRunner | None = None, *, executable: str = "git") -> None:
        self._runner = runner or CommandRunner()
        self._executable = executable

    def _git(self, *args: str, check: bool = True):
        return self._runner.run(self._executable, *args, check=check)

    def clone_mirror(self, url: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        self._git("clone", "--mirror", url, str(dest))

    def remote_update_prune(self, mirror: Path) -> None:
        self._git("-C", str(mirror), "remote", "update", "--prune")

    def ref_exists(self, mirror: Path, ref: str) -> bool:
        result = self._git("-C", str(mirror), "show-ref", "--verify", "--quiet", ref, check=False)
        return result.ok

    def worktree_add(self, mirror: Path, path: Path, branch: str, base_ref: str) -> None:
        self._git("-C", str(mirror), "worktree", "add", "-B", branch, str(path), base_ref)

    def worktree_prune(self, mirror: Path) -> None:
        self._git("-C", str(mirror), "worktree", "prune")

    def worktree_repair(self, mirror: Path, path: Path) -> None:
        self._git("-C", str(mirror), "worktree", "repair", str(path))

    def list_worktrees(self, mirror: Path) -> list[Path]:
        result = self._git("-C", str(mirror), "worktree", "list", "--porcelain")
        paths: list[Path] = []
        for line in result.stdout.splitlines():
            if line.startswith("worktree "):
                candidate = Path(line[len("worktree "):])
                if candidate != mirror:
                    paths.append(candidate)
        return paths


@dataclass
class _FakeMirror:
    url: str
    refs: dict[str, str]
    worktrees: dict[Path, str] = field(default_factory=dict)


class FakeGit:
    """In-memory GitBackend for tests.

    ``remotes`` maps clone URLs to the refs they advertise (ref name -> commit id).
    Worktrees are materialized on disk as a directory holding a ``.git`` pointer file.
    """

    def __init__(self, remotes: dict[str, dict[str, str]] | None = None) -> None:
        self.remotes: dict[str, dict[str, str]] = {url: dict(refs) for url, refs in (remotes or {}).items()}
        self.mirrors: dict[Path, _FakeMirror] = {}
        self.calls: list[tuple[str, ...]] = []

    def _mirror(self, mirror: Path) -> _FakeMirror:
        try:
            return self.mirrors[mirror]
        except KeyError as exc:
            raise ExternalToolError(f"fatal: not a git repository: {mirror}") from exc

    def clone_mirror(self, url: str, dest: Path) -> None:
        self.calls.append(("clone", url, str(dest)))
        if url not in self.remotes:
            raise ExternalToolError(f"fatal: repository '{url}' does not exist")
        dest.mkdir(parents=True)
        (dest / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
        self.mirrors[dest] = _FakeMirror(url=url, refs=dict(self.remotes[url]))

    def remote_update_prune(self, mirror: Path) -> None:
        self.calls.append(("fetch", str(mirror)))
        state = self._mirror(mirror)
        branch_refs = {ref: sha for ref, sha in state.refs.items() if ref in self._local_branches(state)}
        state.refs = {**dict(self.remotes.get(state.url, {})), **branch_refs}

    def _local_branches(self, state: _FakeMirror) -> set[str]:
        return {f"refs/heads/{branch}" for branch in state.worktrees.values()}

    def ref_exists(self, mirror: Path, ref: str) -> bool:
        return ref in self._mirror(mirror).refs

    def worktree_add(self, mirror: Path, path: Path, branch: str, base_ref: str) -> None:
        self.calls.append(("worktree-add", str(mirror), str(path), branch, base_ref))
        state = self._mirror(mirror)
        if base_ref not in state.refs:
            raise ExternalToolError(f"fatal: invalid reference: {base_ref}")
        if path.exists() and any(path.iterdir()):
            raise ExternalToolError(f"fatal: '{path}' already exists")
        if branch in state.worktrees.values():
            raise ExternalToolError(f"fatal: '{branch}' is already checked out")
        state.refs[f"refs/heads/{branch}"] = state.refs[base_ref]
        path.mkdir(parents=True, exist_ok=True)
        (path / ".git").write_text(f"gitdir: {mirror}/worktrees/{path.name}\n", encoding="utf-8")
        state.worktrees[path] = branch

    def worktree_prune(self, mirror: Path) -> None:
        self.calls.append(("worktree-prune", str(mirror)))
        state = self._mirror(mirror)
        state.worktrees = {path: branch for path, branch in state.worktrees.items() if (path / ".git").exists()}

    def worktree_repair(self, mirror: Path, path: Path) -> None:
        self.calls.append(("worktree-repair", str(mirror), str(path)))
        state = self._mirror(mirror)
        for registered, branch in list(state.worktrees.items()):
            if registered.name == path.name and not registered.exists():
                del state.worktrees[registered]
                state.worktrees[path] = branch
                return

    def list_worktrees(self, mirror: Path) -> list[Path]:
        return list(self._mirror(mirror).worktrees)

    def branch_of(self, mirror: Path, path: Path) -> str:
        return self._mirror(mirror).worktrees[path]


__all__ = ["FakeGit", "Git", "GitBackend"]
