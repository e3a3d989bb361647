"""Data models for agents on disk."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import UsageError

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_name(value: str, *, kind: str = "agent") -> str:
    """Return ``value`` if it is usable as a single path component, else raise UsageError."""

    if not value or not _SAFE_NAME.match(value) or value in {".", ".."}:
        raise UsageError(
            f"Invalid {kind} name: {value!r} (use letters, digits, '.', '_' or '-', "
            "starting with a letter or digit)"
        )
    return value


@dataclass(slots=True, frozen=True)
class AgentPaths:
    name: str
    root: Path
    work: Path
    logs: Path
    overlay: Path

    @classmethod
    def under(cls, base: Path, name: str) -> "AgentPaths":
        root = base / name
        return cls(name=name, root=root, work=root / "work", logs=root / "logs", overlay=root / "AGENT.md")


@dataclass(slots=True)
class DeletePlan:
    """What a delete would remove; shown to the operator before confirming."""

    name: str
    directory: Path | None
    window: str | None

    @property
    def empty(self) -> bool:
        return self.directory is None and self.window is None

    def summary(self) -> list[str]:
        lines = [f"This will delete agent '{self.name}':"]
        if self.directory is not None:
            lines.append(f"  - Remove directory: {self.directory}")
        if self.window is not None:
            lines.append(f"  - Kill tmux window: {self.window}")
        return lines


@dataclass(slots=True)
class DeleteResult:
    name: str
    removed_directory: bool = False
    killed_window: bool = False
    pruned_mirrors: int = 0

    @property
    def changed(self) -> bool:
        return self.removed_directory or self.killed_window


@dataclass(slots=True)
class RenameResult:
    old: str
    new: str
    moved_directory: bool = False
    renamed_window: bool = False
    warnings: list[str] = field(default_factory=list)


__all__ = ["AgentPaths", "DeletePlan", "DeleteResult", "RenameResult", "validate_name"]
