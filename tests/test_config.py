from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from agentctl.config import DEFAULT_BASE_REFS, AgentctlSettings


@pytest.fixture(autouse=True)
def isolated_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "config.yaml"
    monkeypatch.setenv("AGENTCTL_CONFIG_FILE", str(path))
    monkeypatch.chdir(tmp_path)
    return path


def test_defaults() -> None:
    settings = AgentctlSettings()

    assert settings.session_name == "agents"
    assert settings.agents_base == Path("/srv/agents")
    assert settings.mirrors_path == Path("/srv/git-mirrors")
    assert settings.reserved_names == ("hub", "ctrl")
    assert settings.base_ref_candidates == DEFAULT_BASE_REFS
    assert settings.context_filenames == ("AGENTS.md", "CLAUDE.md", "GEMINI.md")


def test_repo_file_defaults_under_config_dir(tmp_path: Path) -> None:
    settings = AgentctlSettings(config_dir=tmp_path / "cfg")

    assert settings.repo_file == tmp_path / "cfg" / "repos.txt"
    assert settings.remote_config_name_file == tmp_path / "cfg" / "remote_config_name"
    assert AgentctlSettings(repo_file=tmp_path / "r.txt").repo_file == tmp_path / "r.txt"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENTCTL_BASE", str(tmp_path / "agents"))
    monkeypatch.setenv("AGENTCTL_SESSION", "fleet")
    monkeypatch.setenv("AGENTCTL_RESERVED_NAMES", "hub, ctrl , ops")
    monkeypatch.setenv("AGENTCTL_BASE_REFS", "refs/heads/trunk,refs/heads/main")
    monkeypatch.setenv("AGENTCTL_LOG_LEVEL", "debug")

    settings = AgentctlSettings()

    assert settings.agents_base == tmp_path / "agents"
    assert settings.session_name == "fleet"
    assert settings.reserved_names == ("hub", "ctrl", "ops")
    assert settings.base_ref_candidates == ("refs/heads/trunk", "refs/heads/main")
    assert settings.log_level == "DEBUG"


def test_yaml_file_is_read(isolated_config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    isolated_config_file.write_text(
        "session_name: crew\nlogin_shell: /usr/bin/zsh\ncontext_filenames:\n  - AGENTS.md\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("AGENTCTL_SHELL", "/bin/bash")

    settings = AgentctlSettings()

    assert settings.session_name == "crew"
    assert settings.context_filenames == ("AGENTS.md",)
    # environment wins over the YAML file
    assert settings.login_shell == "/bin/bash"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"log_level": "chatty"},
        {"user_mode": "sometimes"},
        {"session_name": "bad:name"},
        {"base_ref_candidates": ""},
    ],
)
def test_invalid_values(kwargs) -> None:
    with pytest.raises(ValidationError):
        AgentctlSettings(**kwargs)


def test_resolved_expands_user_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    settings = AgentctlSettings(config_dir=Path("~/cfg"), ssh_dir=Path("~/.ssh")).resolved()

    assert settings.config_dir == tmp_path.resolve() / "cfg"
    assert settings.ssh_dir == tmp_path.resolve() / ".ssh"
