"""Accessors for the objects the root group stores on ``ctx.obj``."""

from __future__ import annotations

import dataclasses
import json

import click
from rich.console import Console

from bbpr_core.context import ContextResolver
from bbpr_core.service import RepoService

console = Console()
err_console = Console(stderr=True)


def repo_option(f):
    """Per-command ``-R`` that takes precedence over the group-level flag."""
    return click.option(
        "-R",
        "--repo",
        "repo_override",
        default=None,
        metavar="WORKSPACE/REPO",
        help="Operate on this repository.",
    )(f)


def get_service(ctx: click.Context) -> RepoService:
    obj = ctx.find_root().obj
    if obj.get("service") is None:
        obj["service"] = obj["service_factory"]()
    return obj["service"]


def get_resolver(ctx: click.Context, with_service: bool = True) -> ContextResolver:
    obj = ctx.find_root().obj
    return ContextResolver(
        obj["config"],
        obj["probe"],
        service=get_service(ctx) if with_service else None,
        remote=obj.get("remote"),
    )


def effective_repo_override(ctx: click.Context, local_value: str | None) -> str | None:
    return local_value or ctx.find_root().obj.get("repo_override")


def wants_json(ctx: click.Context) -> bool:
    obj = ctx.find_root().obj
    if obj.get("json"):
        return True
    profile = obj["config"].active_profile
    return bool(profile and profile.output_format == "json")


def echo_json(data) -> None:
    if dataclasses.is_dataclass(data):
        data = dataclasses.asdict(data)
    elif isinstance(data, list):
        data = [dataclasses.asdict(d) if dataclasses.is_dataclass(d) else d for d in data]
    click.echo(json.dumps(data, indent=2, default=str))


def notice(ctx: click.Context, message: str) -> None:
    """Print an informational message unless ``--quiet`` is set.

    Under JSON output the message goes to stderr so stdout stays parseable.
    """
    if ctx.find_root().obj.get("quiet"):
        return
    target = err_console if wants_json(ctx) else console
    target.print(f"[yellow]{message}[/yellow]", highlight=False)
