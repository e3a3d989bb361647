"""Generated context files: global host context plus the agent overlay."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from .errors import NotFoundError
from .registry import AgentRegistry

logger = logging.getLogger(__name__)

HOST_CONTEXT_LINK = "HOST_CONTEXT.md"
AGENT_CONTEXT_LINK = "AGENT_CONTEXT.md"


def render_bundle(global_path: Path, overlay_path: Path, global_text: bytes, overlay_text: bytes) -> bytes:
    """Concatenate the sources byte for byte; their encoding is passed through untouched."""

    header = (
        "# Auto-generated. Do not edit in-place.\n"
        "# Source of truth:\n"
        f"#   {global_path}\n"
        f"#   {overlay_path}\n"
        "\n"
    ).encode("utf-8")
    return header + global_text + b"\n\n----\n\n" + overlay_text + b"\n"


def _atomic_write(target: Path, content: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ContextMaterializer:
    """Writes the context bundle into worktree roots."""

    def __init__(self, registry: AgentRegistry, filenames: Iterable[str]) -> None:
        self.registry = registry
        self.filenames = tuple(filenames)

    def write(self, agent: str, worktree_root: Path) -> list[Path]:
        """Regenerate every context file in ``worktree_root``.

        Raises NotFoundError when the worktree or either source document is missing.
        """

        global_path = self.registry.global_context
        overlay_path = self.registry.paths(agent).overlay
        if not worktree_root.is_dir():
            raise NotFoundError(f"Skipping context write (missing repo dir): {worktree_root}")
        if not global_path.is_file():
            raise NotFoundError(f"Skipping context write (missing global context): {global_path}")
        if not overlay_path.is_file():
            raise NotFoundError(f"Skipping context write (missing agent context): {overlay_path}")

        content = render_bundle(
            global_path,
            overlay_path,
            global_path.read_bytes(),
            overlay_path.read_bytes(),
        )
        written: list[Path] = []
        for filename in self.filenames:
            target = worktree_root / filename
            _atomic_write(target, content)
            written.append(target)
        return written

    def try_write(self, agent: str, worktree_root: Path) -> bool:
        try:
            self.write(agent, worktree_root)
        except (NotFoundError, OSError) as exc:
            logger.warning("%s", exc)
            return False
        return True

    def refresh(self, agent: str | None = None, repo: str | None = None) -> int:
        """Regenerate context across matching worktrees and return how many were updated."""

        if agent is not None:
            agents = [agent]
        else:
            if not self.registry.base.is_dir():
                logger.info("No agents directory: %s", self.registry.base)
                return 0
            agents = self.registry.list()

        updated = 0
        for name in agents:
            work_root = self.registry.paths(name).work
            if not work_root.is_dir():
                continue
            if repo is not None:
                checkout = work_root / repo
                if not (checkout / ".git").exists():
                    logger.info("Skipping (not a git worktree): %s", checkout)
                    continue
                candidates = [checkout]
            else:
                candidates = sorted(child for child in work_root.iterdir() if (child / ".git").exists())
            for checkout in candidates:
                if self.try_write(name, checkout):
                    updated += 1
        return updated

    def ensure_links(self, agent: str) -> None:
        """Point the work-dir convenience symlinks at the context sources."""

        paths = self.registry.paths(agent)
        paths.work.mkdir(parents=True, exist_ok=True)
        for source, link_name in (
            (self.registry.global_context, HOST_CONTEXT_LINK),
            (paths.overlay, AGENT_CONTEXT_LINK),
        ):
            if not source.is_file():
                continue
            link = paths.work / link_name
            try:
                if link.is_symlink() or link.exists():
                    link.unlink()
                link.symlink_to(source)
            except OSError as exc:
                logger.warning("could not link %s -> %s: %s", link, source, exc)


__all__ = ["AGENT_CONTEXT_LINK", "ContextMaterializer", "HOST_CONTEXT_LINK", "render_bundle"]
