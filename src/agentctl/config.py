"""Configuration management for agentctl."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_DIR = Path("~/.config/agentctl")
DEFAULT_BASE_REFS = (
    "refs/heads/main",
    "refs/heads/master",
    "refs/heads/develop",
    "refs/remotes/origin/main",
    "refs/remotes/origin/master",
    "refs/remotes/origin/develop",
)
DEFAULT_CONTEXT_FILES = ("AGENTS.md", "CLAUDE.md", "GEMINI.md")
USER_MODES = {"auto", "strict", "off"}


def _alias(env_name: str, field_name: str) -> AliasChoices:
    return AliasChoices(env_name, field_name)


def _config_file_path() -> Path:
    raw = os.environ.get("AGENTCTL_CONFIG_FILE") or str(DEFAULT_CONFIG_DIR / "config.yaml")
    return Path(raw).expanduser()


class AgentctlSettings(BaseSettings):
    """Runtime configuration sourced from arguments, environment, .env and config.yaml."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    session_name: str = Field(default="agents", validation_alias=_alias("AGENTCTL_SESSION", "session_name"))
    hub_window: str = Field(default="hub", validation_alias=_alias("AGENTCTL_HUB_WINDOW", "hub_window"))
    agents_base: Path = Field(
        default=Path("/srv/agents"), validation_alias=_alias("AGENTCTL_BASE", "agents_base")
    )
    mirrors_path: Path = Field(
        default=Path("/srv/git-mirrors"), validation_alias=_alias("AGENTCTL_MIRRORS", "mirrors_path")
    )
    config_dir: Path = Field(
        default=DEFAULT_CONFIG_DIR, validation_alias=_alias("AGENTCTL_CONFIG_DIR", "config_dir")
    )
    repo_file_override: Path | None = Field(
        default=None, validation_alias=_alias("AGENTCTL_REPO_FILE", "repo_file")
    )
    ssh_dir: Path = Field(default=Path("~/.ssh"), validation_alias=_alias("AGENTCTL_SSH_DIR", "ssh_dir"))
    login_shell: str = Field(default="/bin/bash", validation_alias=_alias("AGENTCTL_SHELL", "login_shell"))
    reserved_names: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("hub", "ctrl"), validation_alias=_alias("AGENTCTL_RESERVED_NAMES", "reserved_names")
    )
    base_ref_candidates: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_BASE_REFS, validation_alias=_alias("AGENTCTL_BASE_REFS", "base_ref_candidates")
    )
    context_filenames: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_CONTEXT_FILES, validation_alias=_alias("AGENTCTL_CONTEXT_FILES", "context_filenames")
    )
    require_user: str = Field(default="agent", validation_alias=_alias("AGENTCTL_REQUIRE_USER", "require_user"))
    user_mode: str = Field(default="auto", validation_alias=_alias("AGENTCTL_USER_MODE", "user_mode"))
    host_config_name: str | None = Field(
        default=None, validation_alias=_alias("AGENT_HOST_CONFIG_NAME", "host_config_name")
    )
    tmux_timeout: float = Field(default=10.0, validation_alias=_alias("AGENTCTL_TMUX_TIMEOUT", "tmux_timeout"))
    log_level: str = Field(default="INFO", validation_alias=_alias("AGENTCTL_LOG_LEVEL", "log_level"))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=_config_file_path()),
            file_secret_settings,
        )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "AGENTCTL_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("user_mode")
    @classmethod
    def _normalize_user_mode(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in USER_MODES:
            raise ValueError(f"Invalid AGENTCTL_USER_MODE: {value} (use 'auto', 'strict' or 'off')")
        return normalized

    @field_validator("session_name")
    @classmethod
    def _validate_session_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized or ":" in normalized or "." in normalized:
            raise ValueError("AGENTCTL_SESSION must be non-empty and must not contain ':' or '.'")
        return normalized

    @field_validator("reserved_names", "base_ref_candidates", "context_filenames", mode="before")
    @classmethod
    def _parse_list(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        raise TypeError("expected a list of strings or a comma-separated string")

    @field_validator("base_ref_candidates", "context_filenames")
    @classmethod
    def _require_entries(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("at least one entry is required")
        return value

    @property
    def repo_file(self) -> Path:
        """Repo name to clone URL mapping document."""

        return self.repo_file_override or self.config_dir / "repos.txt"

    @property
    def remote_config_name_file(self) -> Path:
        return self.config_dir / "remote_config_name"

    def resolved(self) -> "AgentctlSettings":
        """Return a copy with user-relative paths expanded and made absolute."""

        def _abs(path: Path) -> Path:
            return path.expanduser().resolve()

        return self.model_copy(
            update={
                "agents_base": _abs(self.agents_base),
                "mirrors_path": _abs(self.mirrors_path),
                "config_dir": _abs(self.config_dir),
                "repo_file_override": _abs(self.repo_file_override) if self.repo_file_override else None,
                "ssh_dir": _abs(self.ssh_dir),
            }
        )


@lru_cache(maxsize=1)
def get_settings() -> AgentctlSettings:
    """Return cached settings instance."""

    return AgentctlSettings().resolved()


__all__ = ["AgentctlSettings", "DEFAULT_BASE_REFS", "DEFAULT_CONTEXT_FILES", "get_settings"]
