"""agentctl command-line interface."""

from __future__ import annotations

import argparse
import os
import pwd
import sys

import yaml
from pydantic import ValidationError

from . import __version__
from .config import AgentctlSettings, get_settings
from .errors import AgentctlError, UsageError
from .registry import DeletePlan
from .remote_config import RemoteConfigSync
from .workspace import Workspace, build_workspace, configure_logging


def _confirm_delete(plan: DeletePlan) -> str | None:
    for line in plan.summary():
        print(line)
    print("Type the agent name to confirm: ", end="", flush=True)
    try:
        return input()
    except EOFError:
        print()
        return None


def cmd_session(args: argparse.Namespace, workspace: Workspace) -> int:
    workspace.sessions.ensure_session()
    return workspace.windows.attach()


def cmd_create_agent(args: argparse.Namespace, workspace: Workspace) -> int:
    paths = workspace.registry.ensure(args.agent)
    print(f"Created: {paths.root}")
    return 0


def cmd_start(args: argparse.Namespace, workspace: Workspace) -> int:
    paths = workspace.sessions.start_agent_window(args.agent)
    if args.no_attach:
        print(f"Started: {workspace.windows.describe(args.agent)} ({paths.work})")
        return 0
    return workspace.windows.attach()


def cmd_worktree(args: argparse.Namespace, workspace: Workspace) -> int:
    result = workspace.worktrees.ensure(args.agent, args.repo, args.branch)
    if result.created:
        print(f"Worktree ready: {result.path} (branch {result.branch} from {result.base_ref})")
    else:
        print(f"Worktree already exists: {result.path}")
    return 0


def cmd_list_repos(args: argparse.Namespace, workspace: Workspace) -> int:
    for name in workspace.catalog.names():
        print(name)
    return 0


def cmd_list_agents(args: argparse.Namespace, workspace: Workspace) -> int:
    for name in workspace.registry.list():
        print(name)
    return 0


def cmd_ps(args: argparse.Namespace, workspace: Workspace) -> int:
    windows = workspace.windows
    if not windows.session_running():
        print(f"tmux session '{windows.session_name}' is not running")
        return 0

    print(f"tmux session: {windows.session_name}")
    print()
    status = windows.window_status()
    for window in sorted(status, key=lambda item: item.name):
        print(
            f"window={window.name} index={window.index} active={'yes' if window.active else 'no'} "
            f"panes={window.panes} cwd={window.cwd} cmd={window.command}"
        )
    print()

    print("agent workspaces on disk:")
    live = {window.name for window in status}
    registry = workspace.registry
    for name in registry.list():
        paths = registry.paths(name)
        worktrees = 0
        if paths.work.is_dir():
            worktrees = sum(1 for child in paths.work.iterdir() if child.is_dir() and not child.is_symlink())
        state = "tmux-live" if name in live else "disk-only"
        print(f"  {name} status={state} worktrees={worktrees} path={paths.root}")
    return 0


def cmd_delete(args: argparse.Namespace, workspace: Workspace) -> int:
    result = workspace.registry.delete(args.agent, force=args.force, confirm=_confirm_delete)
    if not args.force and not result.changed:
        print(f"No such agent on disk or in tmux: {args.agent}")
        return 0
    print(f"Deleted agent: {args.agent}")
    return 0


def cmd_rename(args: argparse.Namespace, workspace: Workspace) -> int:
    result = workspace.registry.rename(args.old, args.new)
    if result.old == result.new:
        print("Old and new names are the same.")
        return 0
    print(f"Renamed agent: {result.old} -> {result.new}")
    return 0


def cmd_refresh_context(args: argparse.Namespace, workspace: Workspace) -> int:
    updated = workspace.materializer.refresh(args.agent, args.repo)
    print(f"Refreshed context in {updated} repo worktrees.")
    return 0


def cmd_sync_config(args: argparse.Namespace, workspace: Workspace) -> int:
    result = RemoteConfigSync(workspace.settings).sync(args.config_name, args.region)
    print("Synced:")
    print(f"  - SSH key: {result.key_path} (from {result.secret_id})")
    print(f"  - repos:   {result.repo_file} (from {result.parameter_name})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentctl",
        description="Manage agent workspaces: tmux windows, git worktrees and shared context.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    p_session = sub.add_parser("session", help="Ensure the tmux session exists and attach to it")
    p_session.set_defaults(func=cmd_session)

    p_create = sub.add_parser("create-agent", help="Create an agent workspace on disk")
    p_create.add_argument("agent")
    p_create.set_defaults(func=cmd_create_agent)

    p_start = sub.add_parser("start", help="Open (or select) the agent's tmux window and attach")
    p_start.add_argument("agent")
    p_start.add_argument("--no-attach", action="store_true", help="Do not attach to the session")
    p_start.set_defaults(func=cmd_start)

    p_worktree = sub.add_parser("worktree", help="Create a worktree for an agent from the shared mirror")
    p_worktree.add_argument("agent")
    p_worktree.add_argument("repo")
    p_worktree.add_argument("branch")
    p_worktree.set_defaults(func=cmd_worktree)

    p_repos = sub.add_parser("list-repos", help="List configured repo names")
    p_repos.set_defaults(func=cmd_list_repos)

    p_agents = sub.add_parser("list-agents", help="List agent workspaces")
    p_agents.set_defaults(func=cmd_list_agents)

    p_ps = sub.add_parser("ps", help="Show tmux windows and on-disk agents")
    p_ps.set_defaults(func=cmd_ps)

    p_delete = sub.add_parser("delete", help="Delete an agent workspace and its window")
    p_delete.add_argument("agent")
    p_delete.add_argument("--force", action="store_true", help="Skip the confirmation prompt")
    p_delete.set_defaults(func=cmd_delete)

    p_rename = sub.add_parser("rename", help="Rename an agent workspace and its window")
    p_rename.add_argument("old")
    p_rename.add_argument("new")
    p_rename.set_defaults(func=cmd_rename)

    p_refresh = sub.add_parser("refresh-context", help="Regenerate context files in agent worktrees")
    p_refresh.add_argument("agent", nargs="?")
    p_refresh.add_argument("repo", nargs="?")
    p_refresh.set_defaults(func=cmd_refresh_context)

    p_sync = sub.add_parser("sync-config", help="Fetch the shared SSH key and repo list from AWS")
    p_sync.add_argument("config_name", nargs="?")
    p_sync.add_argument("--region", help="AWS region (default: environment or instance metadata)")
    p_sync.set_defaults(func=cmd_sync_config)

    return parser


def run(argv: list[str] | None, workspace: Workspace) -> int:
    """Parse ``argv`` and dispatch against ``workspace``; return the exit code."""

    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return 2
    try:
        return args.func(args, workspace)
    except UsageError as exc:
        parser.print_usage(sys.stderr)
        print(str(exc), file=sys.stderr)
        return exc.exit_code
    except AgentctlError as exc:
        print(str(exc), file=sys.stderr)
        return exc.exit_code


def ensure_agent_user(settings: AgentctlSettings, argv: list[str]) -> None:
    """Make sure agentctl runs as the workspace owner, re-executing through sudo if allowed."""

    if settings.user_mode == "off":
        return
    current = pwd.getpwuid(os.geteuid()).pw_name
    if current == settings.require_user:
        return
    if settings.user_mode == "strict":
        print(
            f"agentctl must be run as '{settings.require_user}' (current user: '{current}').",
            file=sys.stderr,
        )
        print(f"Run: sudo -i -u {settings.require_user}", file=sys.stderr)
        raise SystemExit(1)
    executable = os.path.abspath(sys.argv[0])
    os.execvp("sudo", ["sudo", "-i", "-u", settings.require_user, executable, *argv])


def main(argv: list[str] | None = None) -> None:
    arguments = list(sys.argv[1:] if argv is None else argv)
    try:
        settings = get_settings()
    except (ValidationError, yaml.YAMLError) as exc:
        print(f"Invalid agentctl configuration: {exc}", file=sys.stderr)
        raise SystemExit(1)
    configure_logging(settings.log_level)
    ensure_agent_user(settings, arguments)
    exit_code = run(arguments, build_workspace(settings))
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
