"""Review session state machine.

    INIT -> FETCHING_CONTEXT -> FETCHING_DIFF -> (PRESENTING <-> DRAFTING) -> SUBMITTING -> DONE
                                                                                          \\-> FAILED
    (PRESENTING | DRAFTING) -> ABORTED on a user quit, nothing submitted

With a decision flag the interactive phases are skipped. The interactive loop
is the pure function ``transition(state, user_input) -> (state, effect)``;
ReviewSessionController only feeds it input from a ReviewUI and executes the
effects, so the loop can be driven by a script in tests.

Submission happens in two steps with different retry semantics:
  1. the decision, as one call; if it fails the session fails and nothing
     else is sent;
  2. each buffered inline comment, one call at a time, every outcome kept.
A failed comment never causes the decision to be resent; retry_failed()
only resubmits the comments that failed, and submit_comments_only() sends
inline comments to a PR whose decision was already recorded.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Union

from bbpr_core.errors import RepoServiceError, ValidationError
from bbpr_core.models import ActiveContext, ChangedFile, Decision, InlineComment, PullRequest

if TYPE_CHECKING:
    from bbpr_core.context import ContextResolver
    from bbpr_core.service import RepoService

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    INIT = "init"
    FETCHING_CONTEXT = "fetching-context"
    FETCHING_DIFF = "fetching-diff"
    PRESENTING = "presenting"
    DRAFTING = "drafting"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ReviewDraft:
    """Decision plus inline comments collected during one session. Never persisted."""

    decision: Decision | None = None
    body: str | None = None
    inline_comments: tuple[InlineComment, ...] = ()

    def with_comment(self, comment: InlineComment) -> ReviewDraft:
        return replace(self, inline_comments=(*self.inline_comments, comment))


# ---------------------------------------------------------------------------
# Interactive loop: inputs, effects and the transition function
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Previous:
    pass


@dataclass(frozen=True)
class Jump:
    index: int


@dataclass(frozen=True)
class StartComment:
    pass


@dataclass(frozen=True)
class AddComment:
    line: int
    text: str


@dataclass(frozen=True)
class CancelComment:
    pass


@dataclass(frozen=True)
class Decide:
    decision: Decision
    body: str | None = None


@dataclass(frozen=True)
class Quit:
    pass


UserInput = Union[Next, Previous, Jump, StartComment, AddComment, CancelComment, Decide, Quit]


@dataclass(frozen=True)
class ShowFile:
    index: int


@dataclass(frozen=True)
class ShowMessage:
    text: str


@dataclass(frozen=True)
class Submit:
    draft: ReviewDraft


@dataclass(frozen=True)
class Abort:
    pass


Effect = Union[ShowFile, ShowMessage, Submit, Abort]


@dataclass(frozen=True)
class SessionState:
    phase: Phase
    files: tuple[ChangedFile, ...] = ()
    cursor: int = 0
    draft: ReviewDraft = field(default_factory=ReviewDraft)

    @property
    def current_file(self) -> ChangedFile | None:
        if not self.files:
            return None
        return self.files[self.cursor]


def transition(state: SessionState, user_input: UserInput) -> tuple[SessionState, Effect | None]:
    """Advance the interactive loop by one input. Pure: no I/O, no mutation."""
    if state.phase is Phase.PRESENTING:
        return _presenting(state, user_input)
    if state.phase is Phase.DRAFTING:
        return _drafting(state, user_input)
    raise ValueError(f"No interactive transitions from phase {state.phase.value!r}")


def _presenting(state: SessionState, user_input: UserInput) -> tuple[SessionState, Effect | None]:
    if isinstance(user_input, (Next, Previous, Jump)):
        if isinstance(user_input, Next):
            target = state.cursor + 1
        elif isinstance(user_input, Previous):
            target = state.cursor - 1
        else:
            target = user_input.index
        if not 0 <= target < len(state.files):
            return state, ShowMessage("No such file.")
        return replace(state, cursor=target), ShowFile(target)

    if isinstance(user_input, StartComment):
        if state.current_file is None:
            return state, ShowMessage("There are no files to comment on.")
        return replace(state, phase=Phase.DRAFTING), ShowMessage(f"Commenting on {state.current_file.path}")

    if isinstance(user_input, Decide):
        body = (user_input.body or "").strip() or None
        if user_input.decision is Decision.COMMENT and body is None:
            return state, ShowMessage("A comment review needs a body.")
        draft = replace(state.draft, decision=user_input.decision, body=body)
        return replace(state, phase=Phase.SUBMITTING, draft=draft), Submit(draft)

    if isinstance(user_input, Quit):
        return replace(state, phase=Phase.ABORTED), Abort()

    return state, ShowMessage("Start a comment first.")


def _drafting(state: SessionState, user_input: UserInput) -> tuple[SessionState, Effect | None]:
    if isinstance(user_input, AddComment):
        text = user_input.text.strip()
        if user_input.line < 1 or not text:
            return state, ShowMessage("A comment needs a line number of 1 or more and some text.")
        comment = InlineComment(path=state.current_file.path, line=user_input.line, text=text)
        draft = state.draft.with_comment(comment)
        message = f"Comment {len(draft.inline_comments)} added on {comment.path}:{comment.line}"
        return replace(state, phase=Phase.PRESENTING, draft=draft), ShowMessage(message)

    if isinstance(user_input, CancelComment):
        return replace(state, phase=Phase.PRESENTING), ShowMessage("Comment discarded.")

    if isinstance(user_input, Quit):
        return replace(state, phase=Phase.ABORTED), Abort()

    return state, ShowMessage("Finish or cancel the current comment first.")


class ReviewUI(ABC):
    """Source of user input and sink for effects during the interactive loop."""

    @abstractmethod
    def next_input(self, state: SessionState) -> UserInput:
        """Block until the user chooses the next action."""

    def show(self, effect: Effect, state: SessionState) -> None:
        """Render an effect. The default renders nothing."""


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass
class CommentResult:
    index: int  # 1-based position in the draft
    comment: InlineComment
    error: RepoServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ReviewOutcome:
    """Result of a session that reached DONE.

    ``decision`` is None when only inline comments were sent.
    """

    context: ActiveContext
    decision: Decision | None
    decision_committed: bool = True
    comment_results: list[CommentResult] = field(default_factory=list)
    pull_request: PullRequest | None = None

    @property
    def committed_comments(self) -> list[CommentResult]:
        return [r for r in self.comment_results if r.ok]

    @property
    def failed_comments(self) -> list[CommentResult]:
        return [r for r in self.comment_results if not r.ok]

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_comments)


@dataclass
class ReviewRequest:
    """What the user asked for on the command line."""

    repo_override: str | None = None
    pr_id: int | None = None
    approve: bool = False
    request_changes: bool = False
    comment: bool = False
    body: str | None = None
    inline_comments: tuple[InlineComment, ...] = ()

    def decision(self) -> Decision | None:
        """The single flagged decision, or None for an interactive session.

        Raises ValidationError for contradictory flags.
        """
        flagged = [
            (flag, decision)
            for flag, decision, on in (
                ("--approve", Decision.APPROVE, self.approve),
                ("--request-changes", Decision.REQUEST_CHANGES, self.request_changes),
                ("--comment", Decision.COMMENT, self.comment),
            )
            if on
        ]
        if len(flagged) > 1:
            names = ", ".join(flag for flag, _ in flagged)
            raise ValidationError(f"Only one review decision may be given, got: {names}")
        if self.comment and not (self.body or "").strip():
            raise ValidationError("--comment requires --body <text>")
        if self.body is not None and not self.comment:
            raise ValidationError("--body is only valid together with --comment")
        for comment in self.inline_comments:
            if comment.line < 1 or not comment.text.strip():
                raise ValidationError(f"Invalid inline comment {comment.path}:{comment.line}: {comment.text!r}")
        return flagged[0][1] if flagged else None


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class ReviewSessionController:
    """Drives one `bbpr pr review` invocation through the phases above.

    ``phase`` always holds the current phase and ``history`` every phase
    entered, in order. On FAILED the error is kept in ``error`` and re-raised.
    """

    def __init__(self, resolver: ContextResolver, service: RepoService, ui: ReviewUI | None = None):
        self.resolver = resolver
        self.service = service
        self.ui = ui
        self.phase = Phase.INIT
        self.history: list[Phase] = [Phase.INIT]
        self.error: Exception | None = None
        self.context: ActiveContext | None = None
        self.pull_request: PullRequest | None = None
        self.files: list[ChangedFile] = []

    def run(self, request: ReviewRequest) -> ReviewOutcome | None:
        """Run the session. Returns None if the user quit before submitting."""
        try:
            decision = request.decision()
            if decision is None and self.ui is None:
                raise ValidationError("No review decision given and no interactive terminal to ask for one")

            self._enter(Phase.FETCHING_CONTEXT)
            self.context = self.resolver.resolve(request.repo_override, request.pr_id)

            self._enter(Phase.FETCHING_DIFF)
            self.pull_request, self.files = self._fetch(self.context)

            if decision is None:
                draft = self._interact(ReviewDraft(inline_comments=tuple(request.inline_comments)))
                if draft is None:
                    return None
            else:
                draft = ReviewDraft(
                    decision=decision,
                    body=(request.body or "").strip() or None,
                    inline_comments=tuple(request.inline_comments),
                )

            self._enter(Phase.SUBMITTING)
            outcome = self._submit(self.context, draft)
            self._enter(Phase.DONE)
            return outcome
        except Exception as e:
            self.error = e
            self._enter(Phase.FAILED)
            raise

    def submit_comments_only(self, request: ReviewRequest) -> ReviewOutcome:
        """Send the request's inline comments without submitting any decision.

        Used to resend comments that failed after the decision was recorded.
        """
        try:
            if request.decision() is not None:
                raise ValidationError("A review decision cannot be combined with a comments-only submission")
            if not request.inline_comments:
                raise ValidationError("No inline comments to submit")

            self._enter(Phase.FETCHING_CONTEXT)
            self.context = self.resolver.resolve(request.repo_override, request.pr_id)

            self._enter(Phase.SUBMITTING)
            results = self._submit_comments(self.context, list(enumerate(request.inline_comments, start=1)))
            self._enter(Phase.DONE)
            return ReviewOutcome(
                context=self.context, decision=None, decision_committed=False, comment_results=results
            )
        except Exception as e:
            self.error = e
            self._enter(Phase.FAILED)
            raise

    def retry_failed(self, outcome: ReviewOutcome, indices: list[int] | None = None) -> ReviewOutcome:
        """Resubmit failed inline comments only; the decision is never resent.

        ``indices`` (1-based) narrows the retry to specific failed comments.
        Returns a new outcome with the same indices and updated errors.
        """
        wanted = set(indices) if indices is not None else None
        retry = [r for r in outcome.failed_comments if wanted is None or r.index in wanted]
        retried = {r.index: r for r in self._submit_comments(outcome.context, [(r.index, r.comment) for r in retry])}
        results = [retried.get(r.index, r) for r in outcome.comment_results]
        return replace(outcome, comment_results=results)

    # ------------------------------------------------------------------ #

    def _enter(self, phase: Phase) -> None:
        logger.debug("Review session: %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        self.history.append(phase)

    def _fetch(self, context: ActiveContext) -> tuple[PullRequest, list[ChangedFile]]:
        """Fetch PR metadata and the diff concurrently and join both."""
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="bbpr-fetch") as pool:
            pr_future = pool.submit(self.service.get_pull_request, context.workspace, context.repo_slug, context.pr_id)
            diff_future = pool.submit(self.service.get_diff, context.workspace, context.repo_slug, context.pr_id)
            return pr_future.result(), list(diff_future.result())

    def _interact(self, draft: ReviewDraft) -> ReviewDraft | None:
        state = SessionState(phase=Phase.PRESENTING, files=tuple(self.files), draft=draft)
        self._enter(Phase.PRESENTING)
        if state.files:
            self.ui.show(ShowFile(0), state)

        while True:
            previous_phase = state.phase
            state, effect = transition(state, self.ui.next_input(state))
            if state.phase is not previous_phase and state.phase in (Phase.PRESENTING, Phase.DRAFTING):
                self._enter(state.phase)
            if effect is not None:
                self.ui.show(effect, state)
            if isinstance(effect, Submit):
                return effect.draft
            if isinstance(effect, Abort):
                self._enter(Phase.ABORTED)
                return None

    def _submit(self, context: ActiveContext, draft: ReviewDraft) -> ReviewOutcome:
        # Point of no return: a failure here propagates and nothing else is sent.
        self.service.submit_decision(context.workspace, context.repo_slug, context.pr_id, draft.decision, draft.body)
        logger.debug("Decision %s committed on PR #%s", draft.decision.value, context.pr_id)

        results = self._submit_comments(context, list(enumerate(draft.inline_comments, start=1)))
        return ReviewOutcome(
            context=context,
            decision=draft.decision,
            decision_committed=True,
            comment_results=results,
            pull_request=self.pull_request,
        )

    def _submit_comments(
        self, context: ActiveContext, numbered: list[tuple[int, InlineComment]]
    ) -> list[CommentResult]:
        """Send comments one by one, in order, keeping every outcome."""
        results = []
        for index, comment in numbered:
            try:
                self.service.submit_comment(context.workspace, context.repo_slug, context.pr_id, comment)
            except RepoServiceError as e:
                logger.warning("Inline comment %d on %s:%d failed: %s", index, comment.path, comment.line, e)
                results.append(CommentResult(index=index, comment=comment, error=e))
            else:
                results.append(CommentResult(index=index, comment=comment))
        return results
