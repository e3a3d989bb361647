from __future__ import annotations

from types import SimpleNamespace

import pytest

from agentctl import cli
from agentctl.cli import ensure_agent_user, run
from agentctl.config import AgentctlSettings
from agentctl.tmux import FakeTmux
from agentctl.workspace import Workspace

from conftest import write_global_context


def _answer(value):
    def fake_input(prompt: str = "") -> str:
        if isinstance(value, BaseException):
            raise value
        return value

    return fake_input


def test_list_repos_and_agents(workspace: Workspace, capsys) -> None:
    assert run(["create-agent", "b2"], workspace) == 0
    assert run(["create-agent", "a1"], workspace) == 0
    capsys.readouterr()

    assert run(["list-repos"], workspace) == 0
    assert capsys.readouterr().out == "demo\n"
    assert run(["list-agents"], workspace) == 0
    assert capsys.readouterr().out == "a1\nb2\n"


def test_create_agent_rejects_reserved_name(workspace: Workspace, capsys) -> None:
    assert run(["create-agent", "hub"], workspace) == 1
    assert "reserved" in capsys.readouterr().err
    assert not workspace.registry.exists("hub")


def test_create_agent_rejects_bad_name(workspace: Workspace, capsys) -> None:
    assert run(["create-agent", "../escape"], workspace) == 2
    assert "usage: agentctl" in capsys.readouterr().err


def test_worktree_command(workspace: Workspace, capsys) -> None:
    assert run(["worktree", "a1", "demo", "feature-x"], workspace) == 0
    out = capsys.readouterr().out
    assert out.startswith("Worktree ready: ")
    assert "branch feature-x from refs/heads/main" in out

    assert run(["worktree", "a1", "demo", "feature-x"], workspace) == 0
    assert capsys.readouterr().out.startswith("Worktree already exists: ")


def test_worktree_unknown_repo(workspace: Workspace, capsys) -> None:
    assert run(["worktree", "a1", "nope", "feature-x"], workspace) == 1
    assert "Unknown repo: nope" in capsys.readouterr().err


def test_start_without_attach(workspace: Workspace, fake_tmux: FakeTmux, capsys) -> None:
    assert run(["start", "a1", "--no-attach"], workspace) == 0

    assert capsys.readouterr().out.startswith("Started: agents:a1")
    assert fake_tmux.attached == []


def test_start_attaches(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    assert run(["start", "a1"], workspace) == 0
    assert fake_tmux.attached == ["agents"]


def test_session_command(workspace: Workspace, fake_tmux: FakeTmux) -> None:
    assert run(["session"], workspace) == 0
    assert "agents" in fake_tmux.sessions
    assert fake_tmux.attached == ["agents"]


def test_ps_without_session(workspace: Workspace, capsys) -> None:
    assert run(["ps"], workspace) == 0
    assert capsys.readouterr().out == "tmux session 'agents' is not running\n"


def test_ps_lists_windows_and_disk_state(workspace: Workspace, capsys) -> None:
    workspace.sessions.start_agent_window("a1")
    workspace.registry.ensure("b2")
    workspace.worktrees.ensure("b2", "demo", "feature-x")

    assert run(["ps"], workspace) == 0

    out = capsys.readouterr().out
    assert "tmux session: agents" in out
    assert "window=a1 index=1" in out
    assert "agent workspaces on disk:" in out
    a1_root = workspace.registry.paths("a1").root
    b2_root = workspace.registry.paths("b2").root
    assert f"  a1 status=tmux-live worktrees=0 path={a1_root}" in out
    assert f"  b2 status=disk-only worktrees=1 path={b2_root}" in out


def test_delete_cancelled_on_eof(workspace: Workspace, monkeypatch, capsys) -> None:
    workspace.registry.ensure("a1")
    monkeypatch.setattr("builtins.input", _answer(EOFError()))

    assert run(["delete", "a1"], workspace) == 1

    captured = capsys.readouterr()
    assert "This will delete agent 'a1':" in captured.out
    assert "Cancelled." in captured.err
    assert workspace.registry.exists("a1")


def test_delete_confirmed_by_name(workspace: Workspace, monkeypatch, capsys) -> None:
    workspace.sessions.start_agent_window("a1")
    monkeypatch.setattr("builtins.input", _answer(" a1 "))

    assert run(["delete", "a1"], workspace) == 0

    assert "Deleted agent: a1" in capsys.readouterr().out
    assert not workspace.registry.exists("a1")
    assert workspace.windows.list_live_windows() == {"hub"}


def test_delete_force_and_missing(workspace: Workspace, capsys) -> None:
    workspace.registry.ensure("a1")

    assert run(["delete", "a1", "--force"], workspace) == 0
    assert not workspace.registry.exists("a1")
    capsys.readouterr()

    assert run(["delete", "ghost"], workspace) == 0
    assert capsys.readouterr().out == "No such agent on disk or in tmux: ghost\n"


def test_rename_commands(workspace: Workspace, capsys) -> None:
    workspace.registry.ensure("a1")

    assert run(["rename", "a1", "a1"], workspace) == 0
    assert capsys.readouterr().out == "Old and new names are the same.\n"

    assert run(["rename", "a1", "a2"], workspace) == 0
    assert capsys.readouterr().out == "Renamed agent: a1 -> a2\n"
    assert workspace.registry.list() == ["a2"]

    assert run(["rename", "hub", "a3"], workspace) == 1
    assert run(["rename", "ghost", "a3"], workspace) == 1


def test_refresh_context_reports_count(workspace: Workspace, capsys) -> None:
    write_global_context(workspace)
    workspace.worktrees.ensure("a1", "demo", "feature-x")
    capsys.readouterr()

    assert run(["refresh-context"], workspace) == 0
    assert capsys.readouterr().out == "Refreshed context in 1 repo worktrees.\n"
    assert run(["refresh-context", "a1", "other"], workspace) == 0
    assert capsys.readouterr().out == "Refreshed context in 0 repo worktrees.\n"


def test_sync_config_requires_name(workspace: Workspace, capsys) -> None:
    assert run(["sync-config"], workspace) == 2
    assert "Missing config name" in capsys.readouterr().err


def test_no_command_prints_help(workspace: Workspace, capsys) -> None:
    assert run([], workspace) == 2
    assert "usage: agentctl" in capsys.readouterr().err


def test_missing_arguments_exit_with_usage(workspace: Workspace) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run(["worktree", "a1"], workspace)
    assert excinfo.value.code == 2


def _as_user(monkeypatch, name: str) -> None:
    monkeypatch.setattr(cli.pwd, "getpwuid", lambda uid: SimpleNamespace(pw_name=name))


def test_ensure_agent_user_off(settings: AgentctlSettings, monkeypatch) -> None:
    _as_user(monkeypatch, "root")
    ensure_agent_user(settings, ["ps"])


def test_ensure_agent_user_matching_user(monkeypatch) -> None:
    _as_user(monkeypatch, "agent")
    ensure_agent_user(AgentctlSettings(user_mode="strict", require_user="agent"), ["ps"])


def test_ensure_agent_user_strict(monkeypatch, capsys) -> None:
    _as_user(monkeypatch, "root")

    with pytest.raises(SystemExit) as excinfo:
        ensure_agent_user(AgentctlSettings(user_mode="strict", require_user="agent"), ["ps"])

    assert excinfo.value.code == 1
    err = capsys.readouterr().err
    assert "agentctl must be run as 'agent'" in err
    assert "Run: sudo -i -u agent" in err


def test_ensure_agent_user_auto_reexecs(monkeypatch) -> None:
    _as_user(monkeypatch, "root")
    calls = []
    monkeypatch.setattr(cli.sys, "argv", ["/usr/local/bin/agentctl", "ps"])
    monkeypatch.setattr(cli.os, "execvp", lambda file, args: calls.append((file, args)))

    ensure_agent_user(AgentctlSettings(user_mode="auto", require_user="agent"), ["ps"])

    assert calls == [("sudo", ["sudo", "-i", "-u", "agent", "/usr/local/bin/agentctl", "ps"])]


def test_stray_directory_does_not_break_listing(workspace: Workspace, capsys) -> None:
    workspace.sessions.start_agent_window("a1")
    (workspace.registry.base / "my notes").mkdir()
    capsys.readouterr()

    assert run(["ps"], workspace) == 0
    assert "my notes" not in capsys.readouterr().out
    assert run(["refresh-context"], workspace) == 0
    assert run(["list-agents"], workspace) == 0
    assert capsys.readouterr().out.endswith("a1\n")


def test_delete_invalid_name_leaves_no_directories(workspace: Workspace, capsys) -> None:
    assert run(["delete", "../ghost/x", "--force"], workspace) == 2

    assert workspace.registry.list() == []
    assert not (workspace.registry.base.parent / "ghost").exists()
