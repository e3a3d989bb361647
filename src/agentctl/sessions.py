"""tmux session and per-agent window lifecycle."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .context import ContextMaterializer
from .errors import ConflictError
from .locks import agent_locks
from .registry import AgentPaths, AgentRegistry, validate_name
from .runner.utils import shell_quote_single
from .tmux import Multiplexer, WindowInfo

logger = logging.getLogger(__name__)


class WindowManager:
    """Session-scoped window operations over a Multiplexer."""

    def __init__(
        self,
        multiplexer: Multiplexer,
        *,
        session_name: str = "agents",
        hub_window: str = "hub",
        login_shell: str = "/bin/bash",
    ) -> None:
        self.mux = multiplexer
        self.session_name = session_name
        self.hub_window = hub_window
        self.login_shell = login_shell

    @property
    def login_command(self) -> str:
        return f"{self.login_shell} -l"

    def describe(self, name: str) -> str:
        return f"{self.session_name}:{name}"

    def session_running(self) -> bool:
        return self.mux.has_session(self.session_name)

    def ensure_session(self, path: str | None = None) -> None:
        """Create the session once and push PATH/SHELL into its environment.

        tmux otherwise falls back to /bin/sh, which lacks line editing.
        """

        if not self.mux.set_global_option("default-shell", self.login_shell):
            logger.debug("could not set default-shell (no tmux server yet)")
        if not self.mux.set_global_option("default-command", self.login_command):
            logger.debug("could not set default-command (no tmux server yet)")

        if not self.mux.has_session(self.session_name):
            logger.info("Creating tmux session: %s", self.session_name)
            self.mux.new_session(self.session_name, self.hub_window, self.login_command)
            self.mux.set_global_option("default-shell", self.login_shell)
            self.mux.set_global_option("default-command", self.login_command)

        current_path = path if path is not None else os.environ.get("PATH", "")
        for name, value in (("PATH", current_path), ("SHELL", self.login_shell)):
            if not self.mux.set_environment(self.session_name, name, value):
                logger.warning("could not set %s in tmux session %s", name, self.session_name)

    def list_live_windows(self) -> set[str]:
        return {window.name for window in self.window_status()}

    def window_status(self) -> list[WindowInfo]:
        if not self.session_running():
            return []
        return self.mux.list_windows(self.session_name)

    def window_exists(self, name: str) -> bool:
        return name in self.list_live_windows()

    def rename_window_if_exists(self, old: str, new: str, work_dir: Path) -> bool:
        live = self.list_live_windows()
        if old not in live:
            return False
        if new in live:
            raise ConflictError(f"Target tmux window name already exists: {self.describe(new)}")
        self.mux.rename_window(self.session_name, old, new)
        self.set_default_path(new, work_dir)
        return True

    def kill_window_if_exists(self, name: str) -> bool:
        if not self.window_exists(name):
            return False
        self.mux.kill_window(self.session_name, name)
        return True

    def set_default_path(self, name: str, work_dir: Path) -> None:
        # default-path is ignored by newer tmux releases; new-window -c covers those.
        if not self.mux.set_window_option(self.session_name, name, "default-path", str(work_dir)):
            logger.debug("default-path not supported for %s", self.describe(name))

    def attach(self) -> int:
        return self.mux.attach(self.session_name)


class SessionController:
    """Maps each agent to a window whose shell starts in the agent's work root."""

    def __init__(
        self,
        windows: WindowManager,
        registry: AgentRegistry,
        materializer: ContextMaterializer,
    ) -> None:
        self.windows = windows
        self.registry = registry
        self.materializer = materializer

    def ensure_session(self) -> None:
        self.windows.ensure_session()

    def start_agent_window(self, agent: str) -> AgentPaths:
        """Create or select the agent's window and print the workspace banner into it."""

        self.registry.refuse_reserved(agent, action="start")
        validate_name(agent)
        with agent_locks(self.registry.base, agent):
            self.windows.ensure_session()
            paths = self.registry.ensure(agent)
            self.materializer.ensure_links(agent)

            mux = self.windows.mux
            session = self.windows.session_name
            if self.windows.window_exists(agent):
                mux.select_window(session, agent)
            else:
                logger.info("Creating window %s", self.windows.describe(agent))
                mux.new_window(session, agent, str(paths.work), self.windows.login_command)

            active = mux.active_window_index(session)
            if active is not None:
                mux.rename_window_at(session, active, agent)

            self.windows.set_default_path(agent, paths.work)
            for line in self.banner(paths):
                mux.send_keys(session, agent, line)
        return paths

    def banner(self, paths: AgentPaths) -> list[str]:
        return [
            f"cd {shell_quote_single(str(paths.work))}",
            f"echo {shell_quote_single(f'Workspace: {paths.root}')}",
            f"echo {shell_quote_single(f'Host context: {self.registry.global_context}')}",
            f"echo {shell_quote_single(f'Agent context: {paths.overlay}')}",
        ]


__all__ = ["SessionController", "WindowManager"]
