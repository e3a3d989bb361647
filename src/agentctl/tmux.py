"""Terminal-multiplexer port: tmux sessions, windows and send-keys.

Windows are targeted with tmux's exact-match syntax (``session:=name``) so
that ``a1`` never resolves to ``a10``. tmux tries a numeric target as a window
index before a name, so digits-only names are resolved to their window id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from .errors import ExternalToolError
from .runner import CommandRunner

logger = logging.getLogger(__name__)

_FIELD_SEP = "\t"
_WINDOW_FORMAT = _FIELD_SEP.join(
    [
        "#{window_index}",
        "#{window_name}",
        "#{window_active}",
        "#{window_panes}",
        "#{pane_current_path}",
        "#{pane_current_command}",
        "#{window_id}",
    ]
)


@dataclass(slots=True)
class WindowInfo:
    """A window as reported by ``list-windows``."""

    index: int
    name: str
    active: bool
    panes: int = 1
    cwd: str = ""
    command: str = ""
    window_id: str = ""


class Multiplexer(Protocol):
    """Minimal tmux surface used by the session controller."""

    def has_session(self, session: str) -> bool:
        ...

    def new_session(self, session: str, window: str, command: str) -> None:
        ...

    def set_global_option(self, option: str, value: str) -> bool:
        ...

    def set_environment(self, session: str, name: str, value: str) -> bool:
        ...

    def list_windows(self, session: str) -> list[WindowInfo]:
        ...

    def new_window(self, session: str, name: str, cwd: str, command: str) -> None:
        ...

    def select_window(self, session: str, name: str) -> None:
        ...

    def active_window_index(self, session: str) -> int | None:
        ...

    def rename_window(self, session: str, name: str, new_name: str) -> None:
        ...

    def rename_window_at(self, session: str, index: int, new_name: str) -> None:
        ...

    def set_window_option(self, session: str, name: str, option: str, value: str) -> bool:
        ...

    def send_keys(self, session: str, name: str, text: str) -> None:
        ...

    def kill_window(self, session: str, name: str) -> None:
        ...

    def attach(self, session: str) -> int:
        ...


def window_target(session: str, name: str) -> str:
    return f"{session}:={name}"


class Tmux:
    """Multiplexer that shells out to the tmux executable."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        executable: str = "tmux",
        timeout: float | None = 10.0,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._executable = executable
        self._timeout = timeout

    def _tmux(self, *args: str, check: bool = True):
        return self._runner.run(self._executable, *args, check=check, timeout=self._timeout)

    def has_session(self, session: str) -> bool:
        return self._tmux("has-session", "-t", f"={session}", check=False).ok

    def new_session(self, session: str, window: str, command: str) -> None:
        self._tmux("new-session", "-d", "-s", session, "-n", window, command)

    def set_global_option(self, option: str, value: str) -> bool:
        return self._tmux("set-option", "-g", option, value, check=False).ok

    def set_environment(self, session: str, name: str, value: str) -> bool:
        return self._tmux("set-environment", "-t", session, name, value, check=False).ok

    def list_windows(self, session: str) -> list[WindowInfo]:
        result = self._tmux("list-windows", "-t", f"={session}", "-F", _WINDOW_FORMAT, check=False)
        if not result.ok:
            return []
        return [info for info in (_parse_window_line(line) for line in result.stdout.splitlines()) if info]

    def new_window(self, session: str, name: str, cwd: str, command: str) -> None:
        self._tmux("new-window", "-t", f"{session}:", "-n", name, "-c", cwd, command)

    def _name_target(self, session: str, name: str) -> str:
        if not name.isdigit():
            return window_target(session, name)
        for window in self.list_windows(session):
            if window.name == name and window.window_id:
                return window.window_id
        raise ExternalToolError(f"can't find window: {session}:{name}")

    def select_window(self, session: str, name: str) -> None:
        self._tmux("select-window", "-t", self._name_target(session, name))

    def active_window_index(self, session: str) -> int | None:
        result = self._tmux("display-message", "-p", "-t", session, "#I", check=False)
        value = result.stdout.strip()
        if not result.ok or not value.isdigit():
            return None
        return int(value)

    def rename_window(self, session: str, name: str, new_name: str) -> None:
        self._tmux("rename-window", "-t", self._name_target(session, name), new_name)

    def rename_window_at(self, session: str, index: int, new_name: str) -> None:
        self._tmux("rename-window", "-t", f"{session}:{index}", new_name)

    def set_window_option(self, session: str, name: str, option: str, value: str) -> bool:
        try:
            target = self._name_target(session, name)
        except ExternalToolError:
            return False
        return self._tmux("set-option", "-w", "-t", target, option, value, check=False).ok

    def send_keys(self, session: str, name: str, text: str) -> None:
        self._tmux("send-keys", "-t", self._name_target(session, name), text, "C-m")

    def kill_window(self, session: str, name: str) -> None:
        self._tmux("kill-window", "-t", self._name_target(session, name))

    def attach(self, session: str) -> int:
        return self._runner.run_interactive(self._executable, "attach", "-t", session)


def _parse_window_line(line: str) -> WindowInfo | None:
    parts = line.split(_FIELD_SEP)
    if len(parts) < 4 or not parts[0].isdigit():
        return None
    parts += [""] * (7 - len(parts))
    return WindowInfo(
        index=int(parts[0]),
        name=parts[1],
        active=parts[2] == "1",
        panes=int(parts[3]) if parts[3].isdigit() else 1,
        cwd=parts[4],
        command=parts[5],
        window_id=parts[6],
    )


@dataclass
class FakeWindow:
    index: int
    name: str
    cwd: str
    command: str
    options: dict[str, str] = field(default_factory=dict)
    keys: list[str] = field(default_factory=list)


@dataclass
class FakeSession:
    windows: list[FakeWindow] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    active: int = 0


class FakeTmux:
    """In-memory Multiplexer for tests."""

    def __init__(self) -> None:
        self.sessions: dict[str, FakeSession] = {}
        self.global_options: dict[str, str] = {}
        self.attached: list[str] = []
        self.calls: list[tuple[str, ...]] = []

    def _session(self, session: str) -> FakeSession:
        try:
            return self.sessions[session]
        except KeyError as exc:
            raise ExternalToolError(f"can't find session: {session}") from exc

    def _window(self, session: str, name: str) -> FakeWindow:
        for window in self._session(session).windows:
            if window.name == name:
                return window
        raise ExternalToolError(f"can't find window: {name}")

    def window(self, session: str, name: str) -> FakeWindow:
        return self._window(session, name)

    def has_session(self, session: str) -> bool:
        return session in self.sessions

    def new_session(self, session: str, window: str, command: str) -> None:
        self.calls.append(("new-session", session, window))
        if session in self.sessions:
            raise ExternalToolError(f"duplicate session: {session}")
        self.sessions[session] = FakeSession(windows=[FakeWindow(0, window, "", command)])

    def set_global_option(self, option: str, value: str) -> bool:
        self.global_options[option] = value
        return True

    def set_environment(self, session: str, name: str, value: str) -> bool:
        if session not in self.sessions:
            return False
        self.sessions[session].environment[name] = value
        return True

    def list_windows(self, session: str) -> list[WindowInfo]:
        if session not in self.sessions:
            return []
        state = self.sessions[session]
        return [
            WindowInfo(
                index=window.index,
                name=window.name,
                active=window.index == state.active,
                cwd=window.cwd,
                command=window.command.split()[0] if window.command else "",
                window_id=f"@{window.index}",
            )
            for window in state.windows
        ]

    def new_window(self, session: str, name: str, cwd: str, command: str) -> None:
        self.calls.append(("new-window", session, name, cwd))
        state = self._session(session)
        index = max((window.index for window in state.windows), default=-1) + 1
        state.windows.append(FakeWindow(index, name, cwd, command))
        state.active = index

    def select_window(self, session: str, name: str) -> None:
        self.calls.append(("select-window", session, name))
        self._session(session).active = self._window(session, name).index

    def active_window_index(self, session: str) -> int | None:
        if session not in self.sessions:
            return None
        return self.sessions[session].active

    def rename_window(self, session: str, name: str, new_name: str) -> None:
        self.calls.append(("rename-window", session, name, new_name))
        self._window(session, name).name = new_name

    def rename_window_at(self, session: str, index: int, new_name: str) -> None:
        self.calls.append(("rename-window-at", session, str(index), new_name))
        for window in self._session(session).windows:
            if window.index == index:
                window.name = new_name
                return
        raise ExternalToolError(f"can't find window index: {index}")

    def set_window_option(self, session: str, name: str, option: str, value: str) -> bool:
        try:
            self._window(session, name).options[option] = value
        except ExternalToolError:
            return False
        return True

    def send_keys(self, session: str, name: str, text: str) -> None:
        self._window(session, name).keys.append(text)

    def kill_window(self, session: str, name: str) -> None:
        self.calls.append(("kill-window", session, name))
        state = self._session(session)
        window = self._window(session, name)
        state.windows.remove(window)

    def attach(self, session: str) -> int:
        self._session(session)
        self.attached.append(session)
        return 0


__all__ = ["FakeTmux", "Multiplexer", "Tmux", "WindowInfo", "window_target"]
