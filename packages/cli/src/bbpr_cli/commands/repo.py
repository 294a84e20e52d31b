"""repo command: list repositories in a workspace."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape

from bbpr_cli.render import print_repo_list
from bbpr_cli.state import echo_json, effective_repo_override, get_resolver, get_service, notice, wants_json
from bbpr_core.errors import NoRepositoryContext

console = Console()


@click.group("repo")
def repo_group():
    """Browse repositories."""


@repo_group.command("list")
@click.option("--workspace", default=None, help="Workspace to list (default: the resolved one).")
@click.option("--limit", default=50, show_default=True, help="Maximum number of repositories to show.")
@click.pass_context
def repo_list(ctx, workspace: str | None, limit: int):
    """List repositories, most recently updated first."""
    if workspace is None:
        try:
            resolver = get_resolver(ctx, with_service=False)
            workspace = resolver.resolve_repository(effective_repo_override(ctx, None)).workspace
        except NoRepositoryContext as e:
            if "workspace" in e.missing:
                raise
            # Only the repository is unknown; the workspace alone is enough here.
            config = ctx.find_root().obj["config"]
            local = config.local_override
            profile = config.active_profile
            workspace = (local.workspace if local else None) or (profile.workspace if profile else None)

    repos = get_service(ctx).list_repositories(workspace, limit=limit)
    if wants_json(ctx):
        echo_json(repos)
        return
    if not repos:
        notice(ctx, f"No repositories found in {escape(workspace)}.")
        return
    print_repo_list(console, repos, workspace)
