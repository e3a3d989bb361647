"""Workspace orchestration for coding agents sharing a single host."""

__version__ = "0.3.0"

__all__ = ["__version__"]
