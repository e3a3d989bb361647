from __future__ import annotations

from pathlib import Path

import pytest

from agentctl.config import AgentctlSettings
from agentctl.git import FakeGit
from agentctl.runner import FakeCommandRunner
from agentctl.tmux import FakeTmux
from agentctl.workspace import Workspace, build_workspace

DEMO_URL = "git@host:org/demo.git"


@pytest.fixture
def settings(tmp_path: Path) -> AgentctlSettings:
    return AgentctlSettings(
        agents_base=tmp_path / "agents",
        mirrors_path=tmp_path / "mirrors",
        config_dir=tmp_path / "config",
        ssh_dir=tmp_path / "ssh",
        session_name="agents",
        user_mode="off",
    )


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit({DEMO_URL: {"refs/heads/develop": "c0ffee1", "refs/heads/main": "c0ffee2"}})


@pytest.fixture
def fake_tmux() -> FakeTmux:
    return FakeTmux()


@pytest.fixture
def workspace(settings: AgentctlSettings, fake_git: FakeGit, fake_tmux: FakeTmux) -> Workspace:
    settings.config_dir.mkdir(parents=True)
    settings.repo_file.write_text(f"# name url\ndemo {DEMO_URL}\n", encoding="utf-8")
    return build_workspace(settings, git=fake_git, multiplexer=fake_tmux, runner=FakeCommandRunner())


def write_global_context(workspace: Workspace, text: str = "Host rules.") -> Path:
    path = workspace.registry.global_context
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
