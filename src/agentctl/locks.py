"""Advisory file locks serializing mutations of one agent or one mirror."""

from __future__ import annotations

import fcntl
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import UsageError

LOCK_DIRNAME = ".locks"


def lock_path(root: Path, key: str) -> Path:
    if not key or key.startswith(".") or "/" in key or "\\" in key:
        raise UsageError(f"Invalid lock key: {key!r}")
    return root / LOCK_DIRNAME / f"{key}.lock"


@contextmanager
def advisory_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive ``flock`` on ``path`` for the duration of the block.

    Locks are per open file description, so the same key must not be
    acquired twice by one process.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as lock_file:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


@contextmanager
def agent_locks(base: Path, *names: str) -> Iterator[None]:
    """Lock several agent names in sorted order."""

    ordered = sorted(set(names))
    if not ordered:
        yield
        return
    head, rest = ordered[0], ordered[1:]
    with advisory_lock(lock_path(base, head)):
        with agent_locks(base, *rest):
            yield


__all__ = ["LOCK_DIRNAME", "advisory_lock", "agent_locks", "lock_path"]
