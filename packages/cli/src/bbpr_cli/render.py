"""Terminal rendering with rich. Presentation only; no decisions are made here."""

from __future__ import annotations

import shlex

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from bbpr_core.models import ChangedFile, PullRequest, PullRequestComment, Repository, TruncationMarker
from bbpr_core.review import ReviewOutcome
from bbpr_store.models import ConfigEntry

_STATE_STYLE = {"OPEN": "green", "MERGED": "magenta", "DECLINED": "red", "SUPERSEDED": "dim"}


def diff_line_style(line: str) -> str:
    if line.startswith(("+++", "---", "diff --git", "index ")):
        return "bold"
    if line.startswith("@@"):
        return "cyan"
    if line.startswith("+"):
        return "green"
    if line.startswith("-"):
        return "red"
    return "dim"


def print_file_diff(console: Console, f: ChangedFile, position: str = "") -> None:
    header = Text()
    if position:
        header.append(f"{position} ", style="dim")
    header.append(f.path, style="bold cyan")
    header.append(f"  ({f.changed_line_count} changed lines)", style="dim")
    console.print(header)

    content = f.content
    if isinstance(content, TruncationMarker):
        console.print(Text(str(content), style="yellow"))
        return
    for line in content.splitlines():
        console.print(Text(line, style=diff_line_style(line)), soft_wrap=True, highlight=False)


def print_diff(console: Console, files: list[ChangedFile]) -> None:
    for f in files:
        print_file_diff(console, f)
        console.print()


def print_filenames(console: Console, files: list[ChangedFile]) -> None:
    for f in files:
        console.print(f.path, highlight=False, soft_wrap=True)


def print_pr_list(console: Console, prs: list[PullRequest], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold", justify="right")
    table.add_column("Title", max_width=60)
    table.add_column("Branch", max_width=40)
    table.add_column("Author", max_width=24)
    table.add_column("State")
    for pr in prs:
        style = _STATE_STYLE.get(pr.state, "white")
        table.add_row(
            f"#{pr.id}",
            escape(pr.title),
            escape(f"{pr.source_branch} → {pr.destination_branch}"),
            escape(pr.author),
            f"[{style}]{pr.state}[/{style}]",
        )
    console.print(table)


def print_pr_details(console: Console, pr: PullRequest) -> None:
    style = _STATE_STYLE.get(pr.state, "white")
    console.print(f"[bold]#{pr.id} {escape(pr.title)}[/bold]  [{style}]{pr.state}[/{style}]")
    branches = escape(f"{pr.source_branch} → {pr.destination_branch}")
    console.print(f"[dim]{escape(pr.author)} wants to merge[/dim] {branches}")
    if pr.updated_on:
        console.print(f"[dim]Updated {pr.updated_on[:19].replace('T', ' ')}[/dim]")
    if pr.description:
        console.print()
        console.print(Text(pr.description))
    if pr.url:
        console.print(f"\n[dim]{escape(pr.url)}[/dim]")


def print_comments(console: Console, comments: list[PullRequestComment]) -> None:
    for c in comments:
        where = f"  [cyan]{escape(c.path)}:{c.line}[/cyan]" if c.path else ""
        console.print(f"[bold]{escape(c.author)}[/bold] [dim]{c.created_on[:19].replace('T', ' ')}[/dim]{where}")
        console.print(Text(c.body))
        console.print()


def print_repo_list(console: Console, repos: list[Repository], workspace: str) -> None:
    table = Table(title=f"Repositories in {workspace}", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("Description", max_width=60)
    table.add_column("Visibility")
    table.add_column("Updated")
    for r in repos:
        table.add_row(
            escape(r.full_name),
            escape(r.description),
            "private" if r.is_private else "public",
            r.updated_on[:10],
        )
    console.print(table)


def print_config_entries(console: Console, entries: list[ConfigEntry]) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Key")
    table.add_column("Value")
    table.add_column("Layer")
    for e in entries:
        table.add_row(escape(e.key), escape(e.value), e.layer)
    console.print(table)


def print_review_outcome(console: Console, outcome: ReviewOutcome) -> None:
    ctx = outcome.context
    if outcome.decision is not None:
        console.print(f"[green]{outcome.decision.label} submitted on {ctx.full_name} #{ctx.pr_id}.[/green]")
    if not outcome.comment_results:
        return
    committed = outcome.committed_comments
    console.print(f"{len(committed)}/{len(outcome.comment_results)} inline comment(s) posted.")
    for r in outcome.failed_comments:
        where = f"{escape(r.comment.path)}:{r.comment.line}"
        console.print(f"  [red]Comment {r.index} failed[/red] on {where}: {escape(str(r.error))}")
    if outcome.failed_comments:
        console.print("To resend only the failed comments, run:")
        console.print(Text(f"  {retry_command(outcome)}", style="bold"), soft_wrap=True)


def retry_command(outcome: ReviewOutcome) -> str:
    """Command line that resubmits the failed inline comments without a decision."""
    ctx = outcome.context
    args = ["bbpr", "-R", ctx.full_name, "pr", "review", str(ctx.pr_id)]
    for r in outcome.failed_comments:
        args += ["--inline", f"{r.comment.path}:{r.comment.line}:{r.comment.text}"]
    return shlex.join(args)
