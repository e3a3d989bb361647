"""Exception hierarchy shared by agentctl components."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .runner import CommandResult


class AgentctlError(RuntimeError):
    """Base class for agentctl failures."""

    exit_code = 1


class UsageError(AgentctlError):
    """Raised for malformed arguments or names."""

    exit_code = 2


class NotFoundError(AgentctlError):
    """Raised when a repo, mapping entry, document or agent cannot be found."""


class ConflictError(AgentctlError):
    """Raised when an operation would clobber existing state or touch a reserved name."""


class CancelledError(AgentctlError):
    """Raised when the operator declines a destructive action."""


class ExternalToolError(AgentctlError):
    """Raised when an external command (git, tmux, ssh) fails."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class ToolNotFoundError(ExternalToolError):
    """Raised when a required executable is not on PATH."""


class RemoteConfigError(AgentctlError):
    """Raised when shared config cannot be pulled from the remote store."""


__all__ = [
    "AgentctlError",
    "CancelledError",
    "ConflictError",
    "ExternalToolError",
    "NotFoundError",
    "RemoteConfigError",
    "ToolNotFoundError",
    "UsageError",
]
