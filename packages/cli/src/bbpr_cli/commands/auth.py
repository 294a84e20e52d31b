"""auth command: log in, log out and show which account the credentials belong to."""

from __future__ import annotations

import click
from keyring.errors import KeyringError
from rich.console import Console
from rich.markup import escape

from bbpr_cli.auth import delete_app_password, resolve_bitbucket_credentials, save_app_password
from bbpr_cli.state import echo_json, get_service, notice, wants_json

console = Console()


@click.group("auth")
def auth_group():
    """Manage Bitbucket authentication."""


@auth_group.command("login")
@click.option("-u", "--username", default=None, help="Bitbucket username (default: the profile's user).")
@click.pass_context
def auth_login(ctx, username: str | None):
    """Verify an app password and save it to the OS keyring."""
    config = ctx.find_root().obj["config"]
    profile = config.active_profile
    if not username:
        username = click.prompt("Bitbucket username", default=profile.user if profile else None)
    password = click.prompt("App password", hide_input=True)

    user = ctx.find_root().obj["service_factory"](auth=(username, password)).get_current_user()

    try:
        save_app_password(username, password)
    except KeyringError as e:
        raise click.ClickException(f"Could not save the app password to the keyring: {e}") from e
    qualified = config.set(f"profile.{config.active_profile_name}.user", username)

    name = user.get("display_name") or username
    console.print(f"[green]✓[/green] Logged in to Bitbucket as [bold]{escape(name)}[/bold]")
    notice(ctx, f"Saved the app password to the keyring and set {escape(qualified)} = {escape(username)}.")


@auth_group.command("logout")
@click.option("-u", "--username", default=None, help="Bitbucket username (default: the profile's user).")
@click.pass_context
def auth_logout(ctx, username: str | None):
    """Remove the app password saved by `bbpr auth login`."""
    profile = ctx.find_root().obj["config"].active_profile
    username = username or (profile.user if profile else None) or click.prompt("Username to log out")
    try:
        removed = delete_app_password(username)
    except KeyringError as e:
        raise click.ClickException(f"Could not remove the app password from the keyring: {e}") from e
    if not removed:
        notice(ctx, f"No saved credentials for {escape(username)}.")
        return
    console.print(f"[green]✓[/green] Logged out {escape(username)}")


@auth_group.command("status")
@click.pass_context
def auth_status(ctx):
    """Verify the credentials against the Bitbucket API."""
    profile = ctx.find_root().obj["config"].active_profile
    if resolve_bitbucket_credentials(profile.user if profile else None) is None:
        raise click.UsageError(
            "No Bitbucket credentials found. Run `bbpr auth login`, set BITBUCKET_USERNAME and "
            "BITBUCKET_APP_PASSWORD, or set BITBUCKET_TOKEN."
        )

    user = get_service(ctx).get_current_user()
    if wants_json(ctx):
        echo_json(user)
        return
    name = user.get("display_name") or user.get("username") or "unknown"
    handle = user.get("username") or user.get("nickname") or ""
    console.print(f"[green]✓[/green] Logged in to Bitbucket as [bold]{escape(name)}[/bold] {escape(handle)}")
