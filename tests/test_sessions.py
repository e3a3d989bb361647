from __future__ import annotations

from pathlib import Path

import pytest

from agentctl.errors import ConflictError, UsageError
from agentctl.runner.utils import shell_quote_single
from agentctl.tmux import FakeTmux
from agentctl.workspace import Workspace

from conftest import write_global_context


def test_ensure_session_is_idempotent(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    workspace.windows.ensure_session(path="/opt/bin:/usr/bin")
    workspace.windows.ensure_session(path="/opt/bin:/usr/bin")

    assert [call for call in fake_tmux.calls if call[0] == "new-session"] == [("new-session", "agents", "hub")]
    session = fake_tmux.sessions["agents"]
    assert session.environment == {"PATH": "/opt/bin:/usr/bin", "SHELL": "/bin/bash"}
    assert fake_tmux.global_options == {"default-shell": "/bin/bash", "default-command": "/bin/bash -l"}
    assert workspace.windows.list_live_windows() == {"hub"}


def test_start_creates_window_in_work_root(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    write_global_context(workspace)

    paths = workspace.sessions.start_agent_window("a1")

    window = fake_tmux.window("agents", "a1")
    assert window.cwd == str(paths.work)
    assert window.command == "/bin/bash -l"
    assert window.options["default-path"] == str(paths.work)
    assert window.keys == [
        f"cd '{paths.work}'",
        f"echo 'Workspace: {paths.root}'",
        f"echo 'Host context: {workspace.registry.global_context}'",
        f"echo 'Agent context: {paths.overlay}'",
    ]
    assert (paths.work / "HOST_CONTEXT.md").is_symlink()
    assert (paths.work / "AGENT_CONTEXT.md").is_symlink()


def test_start_twice_reselects_window(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    workspace.sessions.start_agent_window("a1")
    workspace.sessions.start_agent_window("a2")
    workspace.sessions.start_agent_window("a1")

    new_windows = [call for call in fake_tmux.calls if call[0] == "new-window"]
    assert [call[2] for call in new_windows] == ["a1", "a2"]
    assert ("select-window", "agents", "a1") in fake_tmux.calls
    session = fake_tmux.sessions["agents"]
    assert session.active == fake_tmux.window("agents", "a1").index
    assert len(fake_tmux.window("agents", "a1").keys) == 8
    assert sorted(workspace.windows.list_live_windows()) == ["a1", "a2", "hub"]


def test_start_forces_active_window_name(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    workspace.sessions.start_agent_window("a1")

    assert ("rename-window-at", "agents", "1", "a1") in fake_tmux.calls
    assert fake_tmux.window("agents", "a1").index == 1


def test_shell_quote_single_escapes_quotes() -> None:
    assert shell_quote_single("it's") == "'it'\"'\"'s'"
    assert shell_quote_single("/srv/agents") == "'/srv/agents'"


def test_window_queries_without_session(workspace: Workspace) -> None:
    assert workspace.windows.list_live_windows() == set()
    assert workspace.windows.window_exists("a1") is False
    assert workspace.windows.kill_window_if_exists("a1") is False
    assert workspace.windows.rename_window_if_exists("a1", "a2", Path("/tmp")) is False


def test_rename_window_conflict(workspace: Workspace) -> None:
    workspace.sessions.start_agent_window("a1")
    workspace.sessions.start_agent_window("a2")

    with pytest.raises(ConflictError):
        workspace.windows.rename_window_if_exists("a1", "a2", Path("/tmp"))


def test_kill_window_if_exists(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    workspace.sessions.start_agent_window("a1")

    assert workspace.windows.kill_window_if_exists("a1") is True
    assert workspace.windows.kill_window_if_exists("a1") is False
    assert workspace.windows.list_live_windows() == {"hub"}


def test_attach_targets_session(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    workspace.sessions.ensure_session()

    assert workspace.windows.attach() == 0
    assert fake_tmux.attached == ["agents"]


def test_digits_only_agent_names_keep_windows_distinct(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    workspace.sessions.start_agent_window("2")
    workspace.sessions.start_agent_window("x")
    workspace.sessions.start_agent_window("2")

    names = [window.name for window in fake_tmux.sessions["agents"].windows]
    assert names == ["hub", "2", "x"]


def test_start_reserved_name_leaves_tmux_untouched(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    with pytest.raises(ConflictError):
        workspace.sessions.start_agent_window("hub")

    assert fake_tmux.sessions == {}
    assert fake_tmux.global_options == {}


def test_start_invalid_name_creates_nothing(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    with pytest.raises(UsageError):
        workspace.sessions.start_agent_window("../ghost/x")

    assert fake_tmux.sessions == {}
    assert not workspace.registry.base.exists()
