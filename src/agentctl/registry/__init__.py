"""Agent registry exports."""

from .models import AgentPaths, DeletePlan, DeleteResult, RenameResult, validate_name
from .registry import AgentRegistry, default_overlay

__all__ = [
    "AgentPaths",
    "AgentRegistry",
    "DeletePlan",
    "DeleteResult",
    "RenameResult",
    "default_overlay",
    "validate_name",
]
