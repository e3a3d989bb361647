"""Synchronous runner for the external CLIs agentctl drives (git, tmux, ssh)."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

from ..errors import ExternalToolError, ToolNotFoundError
from .utils import sanitize_environment

logger = logging.getLogger(__name__)

TIMEOUT_RETURNCODE = 124


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of an external command invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"
        return f"{' '.join(self.args)}: {detail}"


class CommandRunner:
    """Execute external commands and capture their output."""

    def __init__(self, *, env: Mapping[str, str] | None = None) -> None:
        self._extra_env = dict(env or {})

    def run(
        self,
        *args: str,
        check: bool = False,
        timeout: float | None = None,
        cwd: Path | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run ``args`` and return the captured result.

        ``check=True`` raises :class:`ExternalToolError` on a nonzero exit.
        """

        result = self._invoke(tuple(str(arg) for arg in args), timeout=timeout, cwd=cwd, input_text=input_text)
        if not result.ok:
            logger.debug("command failed: %s", serialize_result(result))
            if check:
                raise ExternalToolError(f"Command failed: {result.describe()}", result)
        return result

    def run_interactive(self, *args: str) -> int:
        """Run ``args`` attached to the current terminal and return its exit code."""

        cmd = [str(arg) for arg in args]
        try:
            completed = subprocess.run(cmd, env=sanitize_environment(self._extra_env))
        except FileNotFoundError as exc:
            raise ToolNotFoundError(f"{cmd[0]} executable not found on PATH") from exc
        return completed.returncode

    def _invoke(
        self,
        args: tuple[str, ...],
        *,
        timeout: float | None,
        cwd: Path | None,
        input_text: str | None,
    ) -> CommandResult:
        try:
            completed = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=str(cwd) if cwd is not None else None,
                input=input_text,
                env=sanitize_environment(self._extra_env),
            )
        except FileNotFoundError as exc:
            raise ToolNotFoundError(f"{args[0]} executable not found on PATH") from exc
        except subprocess.TimeoutExpired:
            return CommandResult(args=args, returncode=TIMEOUT_RETURNCODE, stdout="", stderr="Command timed out")
        return CommandResult(
            args=args,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


class FakeCommandRunner(CommandRunner):
    """Test double that records invocations and replays canned results."""

    def __init__(
        self,
        responses: Iterable[CommandResult] | None = None,
        *,
        handler: Callable[[tuple[str, ...]], CommandResult | None] | None = None,
    ) -> None:  # type: ignore[override]
        super().__init__()
        self._responses = list(responses or [])
        self._handler = handler
        self._invocations: list[tuple[str, ...]] = []
        self.interactive: list[tuple[str, ...]] = []

    def _invoke(self, args, *, timeout, cwd, input_text):  # type: ignore[override]
        self._invocations.append(args)
        if self._handler is not None:
            handled = self._handler(args)
            if handled is not None:
                return handled
        if self._responses:
            return self._responses.pop(0)
        return CommandResult(args=args, returncode=0, stdout="", stderr="")

    def run_interactive(self, *args: str) -> int:  # type: ignore[override]
        self.interactive.append(tuple(args))
        return 0

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


def serialize_result(result: CommandResult) -> str:
    """Serialize a command result for debug logging."""

    return json.dumps(
        {
            "args": list(result.args),
            "returncode": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
        }
    )
