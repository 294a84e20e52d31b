"""CLI entry point for bbpr.

Commands:
  pr      list, view, diff, comments and review pull requests
  config  read and write profiles and the per-project override
  repo    list repositories in a workspace
  auth    check which Bitbucket account the credentials belong to
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.markup import escape

from bbpr_cli.commands.auth import auth_group
from bbpr_cli.commands.config import config_group
from bbpr_cli.commands.pr import pr_group
from bbpr_cli.commands.repo import repo_group
from bbpr_core.errors import BbprError

err_console = Console(stderr=True)


def _build_service(config, auth=None):
    """Instantiate the Bitbucket client from the active profile and environment.

    ``auth`` overrides credential resolution, for checking new credentials.

    Lives in cli.py so bbpr_core never reads credentials itself.
    """
    from bbpr_cli.auth import resolve_bitbucket_credentials
    from bbpr_core.bitbucket import DEFAULT_API_URL, BitbucketService

    profile = config.active_profile
    if auth is None:
        auth = resolve_bitbucket_credentials(profile.user if profile else None)
    if auth is None:
        logging.getLogger(__name__).debug("No Bitbucket credentials found; sending anonymous requests.")
    base_url = (profile.api_url if profile else None) or DEFAULT_API_URL
    return BitbucketService(auth=auth, base_url=base_url)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # urllib3 logs every connection at DEBUG; keep -v focused on bbpr.
    logging.getLogger("urllib3").setLevel(logging.INFO if verbose else logging.WARNING)


class BbprGroup(click.Group):
    """Turns BbprError into a red message and the error's exit code."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except BbprError as e:
            err_console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
            ctx.exit(e.exit_code)


@click.group(cls=BbprGroup)
@click.version_option(
    version=importlib.metadata.version("bbpr"),
    prog_name="bbpr",
)
@click.option(
    "-R",
    "--repo",
    "repo_override",
    default=None,
    metavar="WORKSPACE/REPO",
    help="Operate on this repository instead of the one inferred from git and config.",
)
@click.option("--profile", default=None, help="Use this profile instead of the active one.", envvar="BBPR_PROFILE")
@click.option("--remote", default=None, help="Git remote to read the repository from (default: origin).")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress informational messages.")
@click.pass_context
def main(
    ctx: click.Context,
    repo_override: str | None,
    profile: str | None,
    remote: str | None,
    as_json: bool,
    verbose: bool,
    quiet: bool,
):
    """Work with Bitbucket pull requests from the terminal."""
    from bbpr_core.config import Configuration
    from bbpr_core.git import GitContextProbe

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = Configuration.load(profile=profile)
    ctx.obj["config"] = config
    ctx.obj["probe"] = GitContextProbe()
    ctx.obj["repo_override"] = repo_override
    ctx.obj["remote"] = remote
    ctx.obj["json"] = as_json
    ctx.obj["quiet"] = quiet
    # Built lazily: config commands never need a network client.
    ctx.obj["service_factory"] = lambda auth=None: _build_service(config, auth)


main.add_command(pr_group)
main.add_command(config_group)
main.add_command(repo_group)
main.add_command(auth_group)
