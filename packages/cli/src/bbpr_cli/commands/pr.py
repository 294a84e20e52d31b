"""pr commands: list, view, diff, comments and review."""

from __future__ import annotations

import dataclasses
import sys

import click
from rich.console import Console
from rich.markup import escape

from bbpr_cli.render import (
    print_comments,
    print_diff,
    print_filenames,
    print_pr_details,
    print_pr_list,
    print_review_outcome,
)
from bbpr_cli.state import (
    echo_json,
    effective_repo_override,
    get_resolver,
    get_service,
    notice,
    repo_option,
    wants_json,
)
from bbpr_core.diff_filter import DiffFilterSpec, filter_files
from bbpr_core.errors import RepoServiceError
from bbpr_core.models import InlineComment

console = Console()

EXIT_PARTIAL_REVIEW = 6


class InlineCommentType(click.ParamType):
    """Parses ``PATH:LINE:TEXT``; TEXT may itself contain colons."""

    name = "PATH:LINE:TEXT"

    def convert(self, value, param, ctx):
        if isinstance(value, InlineComment):
            return value
        path, sep, rest = value.partition(":")
        line, sep2, text = rest.partition(":")
        if not (sep and sep2) or not path or not text.strip():
            self.fail(f"{value!r} is not of the form PATH:LINE:TEXT", param, ctx)
        try:
            line_no = int(line)
        except ValueError:
            self.fail(f"{line!r} is not a line number in {value!r}", param, ctx)
        if line_no < 1:
            self.fail(f"line number must be positive in {value!r}", param, ctx)
        return InlineComment(path=path, line=line_no, text=text)


def split_diff_args(args: tuple[str, ...]) -> tuple[int | None, list[str]]:
    """The first purely numeric argument is the PR id; the rest are patterns."""
    if args and args[0].isdigit():
        return int(args[0]), list(args[1:])
    return None, list(args)


@click.group("pr")
def pr_group():
    """Work with pull requests."""


@pr_group.command("list")
@repo_option
@click.option(
    "--state",
    type=click.Choice(["OPEN", "MERGED", "DECLINED", "SUPERSEDED"], case_sensitive=False),
    default="OPEN",
    show_default=True,
    help="Only show pull requests in this state.",
)
@click.option("--limit", default=50, show_default=True, help="Maximum number of pull requests to show.")
@click.pass_context
def pr_list(ctx, repo_override: str | None, state: str, limit: int):
    """List pull requests in the repository."""
    context = get_resolver(ctx, with_service=False).resolve(
        effective_repo_override(ctx, repo_override), require_pr=False
    )
    prs = get_service(ctx).list_pull_requests(context.workspace, context.repo_slug, state=state, limit=limit)
    if wants_json(ctx):
        echo_json(prs)
        return
    if not prs:
        notice(ctx, f"No {state.lower()} pull requests in {escape(context.full_name)}.")
        return
    print_pr_list(console, prs, title=f"{state.title()} pull requests in {context.full_name}")


@pr_group.command("view")
@repo_option
@click.argument("pr_id", type=int, required=False)
@click.option("--comments", "with_comments", is_flag=True, help="Also show the discussion.")
@click.option("-w", "--web", is_flag=True, help="Open the pull request in the browser.")
@click.pass_context
def pr_view(ctx, repo_override: str | None, pr_id: int | None, with_comments: bool, web: bool):
    """Show a pull request (default: the one for the current branch)."""
    context = _resolve(ctx, repo_override, pr_id)
    service = get_service(ctx)
    pr = service.get_pull_request(context.workspace, context.repo_slug, context.pr_id)
    if web:
        _open_in_browser(ctx, pr.url, f"Opened PR #{pr.id} in the browser.")
        return
    comments = service.list_comments(context.workspace, context.repo_slug, context.pr_id) if with_comments else []

    if wants_json(ctx):
        echo_json({"pull_request": _asdict(pr), "comments": [_asdict(c) for c in comments]})
        return
    print_pr_details(console, pr)
    if with_comments:
        console.print()
        console.rule(f"{len(comments)} comment(s)")
        print_comments(console, comments)


@pr_group.command("diff")
@repo_option
@click.argument("args", nargs=-1)
@click.option(
    "--max-diff-size",
    type=click.IntRange(min=0),
    default=None,
    help="Elide files with more changed lines than this.",
)
@click.option("--name-only", is_flag=True, help="Only print the paths of changed files.")
@click.option("-w", "--web", is_flag=True, help="Open the pull request diff in the browser.")
@click.pass_context
def pr_diff(
    ctx,
    repo_override: str | None,
    args: tuple[str, ...],
    max_diff_size: int | None,
    name_only: bool,
    web: bool,
):
    """Show the diff of a pull request.

    \b
    ARGS is an optional PR id followed by path patterns:
      bbpr pr diff 42 'src/*.py' docs/
    """
    pr_id, patterns = split_diff_args(args)
    context = _resolve(ctx, repo_override, pr_id)
    if web:
        pr = get_service(ctx).get_pull_request(context.workspace, context.repo_slug, context.pr_id)
        _open_in_browser(ctx, f"{pr.url.rstrip('/')}/diff", f"Opened the diff of PR #{pr.id} in the browser.")
        return
    spec = DiffFilterSpec.build(patterns, max_diff_size)

    files = get_service(ctx).get_diff(context.workspace, context.repo_slug, context.pr_id)
    selected = filter_files(files, spec)

    if spec.patterns and not selected:
        notice(ctx, f"No changed files match {escape(', '.join(sorted(spec.patterns)))}.")
        if wants_json(ctx):
            echo_json([])
        return

    if wants_json(ctx):
        echo_json([_file_dict(f, include_content=not name_only) for f in selected])
    elif name_only:
        print_filenames(console, selected)
    else:
        print_diff(console, selected)


@pr_group.command("comments")
@repo_option
@click.argument("pr_id", type=int, required=False)
@click.pass_context
def pr_comments(ctx, repo_override: str | None, pr_id: int | None):
    """List comments on a pull request."""
    context = _resolve(ctx, repo_override, pr_id)
    comments = get_service(ctx).list_comments(context.workspace, context.repo_slug, context.pr_id)
    if wants_json(ctx):
        echo_json(comments)
        return
    if not comments:
        notice(ctx, "No comments.")
        return
    print_comments(console, comments)


@pr_group.command("review")
@repo_option
@click.argument("pr_id", type=int, required=False)
@click.option("--approve", is_flag=True, help="Approve the pull request.")
@click.option("--request-changes", is_flag=True, help="Request changes on the pull request.")
@click.option("--comment", is_flag=True, help="Leave a review comment without a verdict (needs --body).")
@click.option("--body", default=None, help="Text of the review comment.")
@click.option(
    "--inline",
    "inline_comments",
    type=InlineCommentType(),
    multiple=True,
    help="Inline comment as PATH:LINE:TEXT. Repeatable.",
)
@click.pass_context
def pr_review(
    ctx,
    repo_override: str | None,
    pr_id: int | None,
    approve: bool,
    request_changes: bool,
    comment: bool,
    body: str | None,
    inline_comments: tuple[InlineComment, ...],
):
    """Review a pull request.

    With a decision flag the review is submitted directly; without one the
    diff is presented file by file and the decision is asked for. Without a
    terminal, --inline alone sends just those comments and no decision.
    """
    from bbpr_cli.interactive import ConsoleReviewUI
    from bbpr_core.review import ReviewRequest, ReviewSessionController

    request = ReviewRequest(
        repo_override=effective_repo_override(ctx, repo_override),
        pr_id=pr_id,
        approve=approve,
        request_changes=request_changes,
        comment=comment,
        body=body,
        inline_comments=tuple(inline_comments),
    )
    # Validated before anything touches the network or the terminal.
    decision = request.decision()
    on_terminal = _stdin_is_interactive()
    controller = ReviewSessionController(
        get_resolver(ctx),
        get_service(ctx),
        ui=ConsoleReviewUI(console) if decision is None and on_terminal else None,
    )

    if decision is None and not on_terminal and request.inline_comments:
        outcome = controller.submit_comments_only(request)
    else:
        outcome = controller.run(request)
        if outcome is None:
            return

    as_json = wants_json(ctx)
    if as_json:
        echo_json(_outcome_dict(outcome))
    else:
        print_review_outcome(console, outcome)
    while outcome.is_partial and on_terminal and not as_json:
        if not click.confirm("Retry the failed inline comments?", default=True):
            break
        outcome = controller.retry_failed(outcome)
        print_review_outcome(console, outcome)

    if outcome.is_partial:
        ctx.exit(EXIT_PARTIAL_REVIEW)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve(ctx, local_override: str | None, pr_id: int | None):
    return get_resolver(ctx).resolve(effective_repo_override(ctx, local_override), pr_id)


def _stdin_is_interactive() -> bool:
    return sys.stdin.isatty()


def _asdict(obj) -> dict:
    return dataclasses.asdict(obj)


def _file_dict(f, include_content: bool) -> dict:
    data = {"path": f.path, "changed_line_count": f.changed_line_count, "truncated": f.is_truncated}
    if include_content:
        data["content"] = str(f.content)
    return data


def _open_in_browser(ctx, url: str, message: str) -> None:
    if not url:
        raise RepoServiceError("Bitbucket returned no web link for this pull request")
    click.launch(url)
    notice(ctx, message)


def _outcome_dict(outcome) -> dict:
    return {
        "repository": outcome.context.full_name,
        "pr_id": outcome.context.pr_id,
        "decision": outcome.decision.value if outcome.decision else None,
        "decision_committed": outcome.decision_committed,
        "committed_comments": [r.index for r in outcome.committed_comments],
        "failed_comments": [
            {
                "index": r.index,
                "path": r.comment.path,
                "line": r.comment.line,
                "text": r.comment.text,
                "error": str(r.error),
            }
            for r in outcome.failed_comments
        ],
    }
