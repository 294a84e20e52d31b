"""Console front end for the interactive review loop."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape

from bbpr_cli.render import print_file_diff
from bbpr_core.models import Decision
from bbpr_core.review import (
    Abort,
    AddComment,
    CancelComment,
    Decide,
    Effect,
    Jump,
    Next,
    Phase,
    Previous,
    Quit,
    ReviewUI,
    SessionState,
    ShowFile,
    ShowMessage,
    StartComment,
    Submit,
    UserInput,
)

_MENU = "[n]ext [p]rev [g]oto [f]iles [c]omment | [a]pprove [r]equest changes [m]essage-only review | [q]uit"
_CHOICES = ["n", "p", "g", "f", "c", "a", "r", "m", "q"]


class ConsoleReviewUI(ReviewUI):
    """Reads single-letter commands with click.prompt and renders with rich."""

    def __init__(self, console: Console):
        self.console = console

    def next_input(self, state: SessionState) -> UserInput:
        if state.phase is Phase.DRAFTING:
            return self._read_comment()

        while True:
            self.console.print(f"[dim]{_MENU}[/dim]")
            choice = click.prompt("Action", type=click.Choice(_CHOICES), show_choices=False)
            if choice == "n":
                return Next()
            if choice == "p":
                return Previous()
            if choice == "g":
                return Jump(click.prompt("File number", type=int) - 1)
            if choice == "f":
                self._list_files(state)
                continue
            if choice == "c":
                return StartComment()
            if choice == "a":
                return Decide(Decision.APPROVE)
            if choice == "r":
                return Decide(Decision.REQUEST_CHANGES)
            if choice == "m":
                return Decide(Decision.COMMENT, click.prompt("Review comment"))
            return Quit()

    def show(self, effect: Effect, state: SessionState) -> None:
        if isinstance(effect, ShowFile):
            f = state.files[effect.index]
            print_file_diff(self.console, f, position=f"[{effect.index + 1}/{len(state.files)}]")
        elif isinstance(effect, ShowMessage):
            self.console.print(f"[yellow]{escape(effect.text)}[/yellow]", highlight=False)
        elif isinstance(effect, Submit):
            label = effect.draft.decision.label
            pending = len(effect.draft.inline_comments)
            self.console.print(f"[dim]Submitting {label} with {pending} inline comment(s)...[/dim]")
        elif isinstance(effect, Abort):
            self.console.print("[yellow]Review aborted; nothing was submitted.[/yellow]")

    def _read_comment(self) -> UserInput:
        line = click.prompt("Line number (blank to cancel)", default="", show_default=False).strip()
        if not line:
            return CancelComment()
        if not line.isdigit():
            # Rejected by the transition function with a message.
            return AddComment(0, "")
        text = click.prompt("Comment")
        return AddComment(int(line), text)

    def _list_files(self, state: SessionState) -> None:
        for i, f in enumerate(state.files, 1):
            marker = "→" if i - 1 == state.cursor else " "
            line = f"{marker} {i:>3}. {escape(f.path)} [dim]({f.changed_line_count})[/dim]"
            self.console.print(line, highlight=False)
