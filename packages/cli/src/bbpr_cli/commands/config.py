"""config commands: read and write profiles and the per-project override."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from bbpr_cli.render import print_config_entries
from bbpr_cli.state import echo_json, notice, wants_json

console = Console()


@click.group("config")
def config_group():
    """Read and write bbpr configuration.

    \b
    Keys:
      user                         active profile name
      profile.<name>.<option>      option: workspace, user, repository,
                                   remote, api_url, output_format
      workspace|repository|remote  shorthand for the active profile
    """


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Set KEY to VALUE in the global configuration file."""
    config = ctx.find_root().obj["config"]
    qualified = config.set(key, value)
    console.print(f"[green]✓[/green] {escape(qualified)} = {escape(value)}", highlight=False)


@config_group.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx, key: str):
    """Print the effective value of KEY."""
    config = ctx.find_root().obj["config"]
    value = config.get(key)
    if value is None:
        notice(ctx, f"{escape(key)} is not set.")
        ctx.exit(1)
    click.echo(value)


@config_group.command("list")
@click.pass_context
def config_list(ctx):
    """List every configured value and the layer it comes from."""
    entries = ctx.find_root().obj["config"].list()
    if wants_json(ctx):
        echo_json(entries)
        return
    if not entries:
        notice(ctx, "No configuration found. Run `bbpr config set` or `bbpr config init`.")
        return
    print_config_entries(console, entries)


@config_group.command("init")
@click.option("--workspace", default=None, help="Bitbucket workspace for this project.")
@click.option("--repository", default=None, help="Repository slug for this project.")
@click.option("--remote", default=None, help="Git remote bbpr should read.")
@click.option(
    "--global",
    "global_",
    is_flag=True,
    help="Write the workspace to the active profile instead of a local .bbpr.yml.",
)
@click.pass_context
def config_init(ctx, workspace: str | None, repository: str | None, remote: str | None, global_: bool):
    """Create a .bbpr.yml at the repository root.

    Defaults are detected from the git remote and confirmed interactively.
    """
    obj = ctx.find_root().obj
    config = obj["config"]
    probe = obj["probe"]

    detected = probe.origin_workspace_and_repo(remote or obj.get("remote"))
    if workspace is None:
        workspace = click.prompt("Workspace", default=detected.workspace if detected else None)
    if global_:
        qualified = config.set("workspace", workspace)
        console.print(f"[green]✓[/green] {escape(qualified)} = {escape(workspace)}", highlight=False)
        return

    if repository is None:
        repository = click.prompt(
            "Repository (blank to use the git remote)",
            default=detected.repo_slug if detected else "",
            show_default=bool(detected),
        )

    directory = probe.repo_root() or Path.cwd()
    path = config.init_local(directory, workspace, repository or None, remote)
    console.print(f"[green]✓[/green] Wrote {escape(str(path))}", highlight=False)
