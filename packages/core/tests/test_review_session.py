"""Tests for bbpr_core.review: the transition function and the session controller."""

from unittest.mock import MagicMock

import pytest

from bbpr_core.context import ContextResolver
from bbpr_core.errors import AuthError, NetworkError, NoMatchingPullRequest, ValidationError
from bbpr_core.models import ActiveContext, ChangedFile, Decision, InlineComment, PullRequest
from bbpr_core.review import (
    Abort,
    AddComment,
    CancelComment,
    Decide,
    Jump,
    Next,
    Phase,
    Previous,
    Quit,
    ReviewDraft,
    ReviewRequest,
    ReviewSessionController,
    ReviewUI,
    SessionState,
    ShowFile,
    ShowMessage,
    StartComment,
    Submit,
    transition,
)
from bbpr_core.service import RepoService

CONTEXT = ActiveContext("acme", "api", pr_id=42)
FILES = (
    ChangedFile.from_text("src/a.py", "diff a\n", 3),
    ChangedFile.from_text("src/b.py", "diff b\n", 5),
)


def _presenting(**kwargs):
    return SessionState(phase=Phase.PRESENTING, files=FILES, **kwargs)


def _resolver(context=CONTEXT):
    resolver = MagicMock(spec=ContextResolver)
    resolver.resolve.return_value = context
    return resolver


def _service():
    service = MagicMock(spec=RepoService)
    service.get_pull_request.return_value = PullRequest(42, "Add a", "OPEN", "feature", "main")
    service.get_diff.return_value = list(FILES)
    return service


class ScriptedUI(ReviewUI):
    """Feeds a fixed list of inputs and records every effect."""

    def __init__(self, inputs):
        self.inputs = list(inputs)
        self.effects = []

    def next_input(self, state):
        return self.inputs.pop(0)

    def show(self, effect, state):
        self.effects.append(effect)


# ---------------------------------------------------------------------------
# transition()
# ---------------------------------------------------------------------------


class TestNavigation:
    def test_next_and_previous(self):
        state, effect = transition(_presenting(), Next())
        assert state.cursor == 1 and effect == ShowFile(1)
        state, effect = transition(state, Previous())
        assert state.cursor == 0 and effect == ShowFile(0)

    def test_out_of_range_stays(self):
        state = _presenting(cursor=1)
        new_state, effect = transition(state, Next())
        assert new_state == state
        assert effect == ShowMessage("No such file.")
        assert transition(_presenting(), Previous())[0].cursor == 0

    def test_jump(self):
        state, effect = transition(_presenting(), Jump(1))
        assert state.cursor == 1 and effect == ShowFile(1)
        assert transition(_presenting(), Jump(5))[1] == ShowMessage("No such file.")

    def test_input_state_not_mutated(self):
        state = _presenting()
        transition(state, Next())
        assert state.cursor == 0


class TestDrafting:
    def test_comment_added_on_current_file(self):
        state, _ = transition(_presenting(cursor=1), StartComment())
        assert state.phase is Phase.DRAFTING

        state, effect = transition(state, AddComment(12, "  rename this  "))
        assert state.phase is Phase.PRESENTING
        assert state.draft.inline_comments == (InlineComment("src/b.py", 12, "rename this"),)
        assert effect == ShowMessage("Comment 1 added on src/b.py:12")

    def test_invalid_comment_stays_drafting(self):
        state = _presenting(cursor=0)
        state, _ = transition(state, StartComment())
        for bad in (AddComment(0, "x"), AddComment(3, "   ")):
            new_state, effect = transition(state, bad)
            assert new_state.phase is Phase.DRAFTING
            assert isinstance(effect, ShowMessage)

    def test_cancel(self):
        state, _ = transition(_presenting(), StartComment())
        state, effect = transition(state, CancelComment())
        assert state.phase is Phase.PRESENTING
        assert state.draft.inline_comments == ()

    def test_no_files(self):
        state = SessionState(phase=Phase.PRESENTING)
        new_state, effect = transition(state, StartComment())
        assert new_state.phase is Phase.PRESENTING
        assert isinstance(effect, ShowMessage)

    def test_navigation_blocked_while_drafting(self):
        state, _ = transition(_presenting(), StartComment())
        new_state, effect = transition(state, Next())
        assert new_state == state
        assert isinstance(effect, ShowMessage)


class TestDecide:
    def test_approve_submits(self):
        state, effect = transition(_presenting(), Decide(Decision.APPROVE))
        assert state.phase is Phase.SUBMITTING
        assert effect == Submit(ReviewDraft(decision=Decision.APPROVE))

    def test_comment_without_body_stays(self):
        state, effect = transition(_presenting(), Decide(Decision.COMMENT, "  "))
        assert state.phase is Phase.PRESENTING
        assert effect == ShowMessage("A comment review needs a body.")

    def test_comment_with_body(self):
        _, effect = transition(_presenting(), Decide(Decision.COMMENT, "Looks fine"))
        assert effect.draft.body == "Looks fine"

    def test_draft_comments_carried(self):
        comment = InlineComment("src/a.py", 1, "x")
        state = _presenting(draft=ReviewDraft(inline_comments=(comment,)))
        _, effect = transition(state, Decide(Decision.REQUEST_CHANGES))
        assert effect.draft.inline_comments == (comment,)

    def test_quit(self):
        state, effect = transition(_presenting(), Quit())
        assert state.phase is Phase.ABORTED
        assert effect == Abort()

    def test_no_transitions_outside_loop(self):
        with pytest.raises(ValueError):
            transition(SessionState(phase=Phase.DONE), Next())


# ---------------------------------------------------------------------------
# ReviewRequest validation
# ---------------------------------------------------------------------------


class TestReviewRequest:
    def test_two_decisions_rejected(self):
        with pytest.raises(ValidationError, match="--approve, --request-changes"):
            ReviewRequest(approve=True, request_changes=True).decision()

    def test_comment_needs_body(self):
        with pytest.raises(ValidationError, match="--body"):
            ReviewRequest(comment=True).decision()

    def test_body_needs_comment(self):
        with pytest.raises(ValidationError, match="--comment"):
            ReviewRequest(approve=True, body="nice").decision()

    def test_bad_inline_comment(self):
        with pytest.raises(ValidationError, match="a.py"):
            ReviewRequest(approve=True, inline_comments=(InlineComment("a.py", 0, "x"),)).decision()

    def test_none_is_interactive(self):
        assert ReviewRequest().decision() is None

    def test_single(self):
        assert ReviewRequest(request_changes=True).decision() is Decision.REQUEST_CHANGES


# ---------------------------------------------------------------------------
# ReviewSessionController
# ---------------------------------------------------------------------------


class TestControllerWithFlags:
    def test_two_decision_flags_fail_before_network(self):
        resolver, service = _resolver(), _service()
        controller = ReviewSessionController(resolver, service)

        with pytest.raises(ValidationError):
            controller.run(ReviewRequest(pr_id=42, approve=True, request_changes=True))

        assert controller.phase is Phase.FAILED
        assert controller.history == [Phase.INIT, Phase.FAILED]
        resolver.resolve.assert_not_called()
        assert service.mock_calls == []

    def test_approve_happy_path(self):
        service = _service()
        controller = ReviewSessionController(_resolver(), service)

        outcome = controller.run(ReviewRequest(pr_id=42, approve=True))

        assert controller.history == [
            Phase.INIT,
            Phase.FETCHING_CONTEXT,
            Phase.FETCHING_DIFF,
            Phase.SUBMITTING,
            Phase.DONE,
        ]
        service.submit_decision.assert_called_once_with("acme", "api", 42, Decision.APPROVE, None)
        assert outcome.decision is Decision.APPROVE
        assert outcome.decision_committed is True
        assert outcome.comment_results == []
        assert not outcome.is_partial
        assert outcome.pull_request.title == "Add a"

    def test_comment_body_passed(self):
        service = _service()
        ReviewSessionController(_resolver(), service).run(ReviewRequest(pr_id=42, comment=True, body=" ok "))
        service.submit_decision.assert_called_once_with("acme", "api", 42, Decision.COMMENT, "ok")

    def test_context_error_fails_without_side_effects(self):
        resolver, service = _resolver(), _service()
        resolver.resolve.side_effect = NoMatchingPullRequest("feature")
        controller = ReviewSessionController(resolver, service)

        with pytest.raises(NoMatchingPullRequest):
            controller.run(ReviewRequest(approve=True))

        assert controller.phase is Phase.FAILED
        assert isinstance(controller.error, NoMatchingPullRequest)
        service.submit_decision.assert_not_called()

    def test_decision_failure_sends_no_comments(self):
        service = _service()
        service.submit_decision.side_effect = AuthError("forbidden")
        controller = ReviewSessionController(_resolver(), service)
        request = ReviewRequest(pr_id=42, approve=True, inline_comments=(InlineComment("src/a.py", 1, "x"),))

        with pytest.raises(AuthError):
            controller.run(request)

        assert controller.phase is Phase.FAILED
        service.submit_comment.assert_not_called()

    def test_fetch_failure(self):
        service = _service()
        service.get_diff.side_effect = NetworkError("down")
        controller = ReviewSessionController(_resolver(), service)
        with pytest.raises(NetworkError):
            controller.run(ReviewRequest(pr_id=42, approve=True))
        assert controller.history[-2:] == [Phase.FETCHING_DIFF, Phase.FAILED]

    def test_no_decision_without_ui(self):
        resolver = _resolver()
        with pytest.raises(ValidationError):
            ReviewSessionController(resolver, _service()).run(ReviewRequest(pr_id=42))
        resolver.resolve.assert_not_called()


class TestPartialFailure:
    COMMENTS = (
        InlineComment("src/a.py", 1, "first"),
        InlineComment("src/b.py", 2, "second"),
        InlineComment("src/a.py", 3, "third"),
    )

    def _run(self, service):
        controller = ReviewSessionController(_resolver(), service)
        outcome = controller.run(ReviewRequest(pr_id=42, request_changes=True, inline_comments=self.COMMENTS))
        return controller, outcome

    def test_reports_failed_comment_by_index(self):
        service = _service()
        service.submit_comment.side_effect = [None, NetworkError("timeout"), None]

        controller, outcome = self._run(service)

        assert controller.phase is Phase.DONE
        assert outcome.decision_committed is True
        assert outcome.is_partial
        assert [r.index for r in outcome.committed_comments] == [1, 3]
        [failed] = outcome.failed_comments
        assert failed.index == 2
        assert failed.comment.path == "src/b.py"
        assert isinstance(failed.error, NetworkError)
        assert service.submit_comment.call_count == 3

    def test_comments_sent_in_order(self):
        service = _service()
        self._run(service)
        sent = [c.args[3] for c in service.submit_comment.call_args_list]
        assert sent == list(self.COMMENTS)

    def test_retry_resends_only_failed(self):
        service = _service()
        service.submit_comment.side_effect = [None, NetworkError("timeout"), None]
        controller, outcome = self._run(service)
        service.submit_comment.reset_mock(side_effect=True)
        service.submit_decision.reset_mock()

        retried = controller.retry_failed(outcome)

        service.submit_comment.assert_called_once_with("acme", "api", 42, self.COMMENTS[1])
        service.submit_decision.assert_not_called()
        assert not retried.is_partial
        assert [r.index for r in retried.comment_results] == [1, 2, 3]

    def test_retry_still_failing_keeps_index(self):
        service = _service()
        service.submit_comment.side_effect = [NetworkError("a"), NetworkError("b"), None]
        controller, outcome = self._run(service)
        service.submit_comment.side_effect = [None, AuthError("no")]

        retried = controller.retry_failed(outcome)

        assert [r.index for r in retried.failed_comments] == [2]
        assert isinstance(retried.failed_comments[0].error, AuthError)

    def test_retry_selected_indices(self):
        service = _service()
        service.submit_comment.side_effect = [NetworkError("a"), NetworkError("b"), None]
        controller, outcome = self._run(service)
        service.submit_comment.reset_mock(side_effect=True)

        retried = controller.retry_failed(outcome, indices=[1])

        service.submit_comment.assert_called_once_with("acme", "api", 42, self.COMMENTS[0])
        assert [r.index for r in retried.failed_comments] == [2]


class TestCommentsOnly:
    def test_sends_comments_without_decision(self):
        resolver, service = _resolver(), _service()
        controller = ReviewSessionController(resolver, service)
        comment = InlineComment("src/b.py", 2, "second")

        outcome = controller.submit_comments_only(ReviewRequest(pr_id=42, inline_comments=(comment,)))

        service.submit_decision.assert_not_called()
        service.submit_comment.assert_called_once_with("acme", "api", 42, comment)
        assert outcome.decision is None
        assert outcome.decision_committed is False
        assert not outcome.is_partial
        assert controller.phase is Phase.DONE

    def test_failure_is_reported_per_comment(self):
        service = _service()
        service.submit_comment.side_effect = [NetworkError("timeout"), None]
        controller = ReviewSessionController(_resolver(), service)
        comments = (InlineComment("a.py", 1, "x"), InlineComment("b.py", 2, "y"))

        outcome = controller.submit_comments_only(ReviewRequest(pr_id=42, inline_comments=comments))

        assert [r.index for r in outcome.failed_comments] == [1]
        assert [r.index for r in outcome.committed_comments] == [2]

    def test_rejects_decision_flag(self):
        resolver, service = _resolver(), _service()
        controller = ReviewSessionController(resolver, service)
        request = ReviewRequest(approve=True, inline_comments=(InlineComment("a.py", 1, "x"),))

        with pytest.raises(ValidationError):
            controller.submit_comments_only(request)

        resolver.resolve.assert_not_called()
        assert controller.phase is Phase.FAILED

    def test_requires_comments(self):
        controller = ReviewSessionController(_resolver(), _service())
        with pytest.raises(ValidationError, match="No inline comments"):
            controller.submit_comments_only(ReviewRequest(pr_id=42))


class TestInteractiveSession:
    def test_scripted_review(self):
        service = _service()
        ui = ScriptedUI([Next(), StartComment(), AddComment(7, "nit"), Decide(Decision.APPROVE)])
        controller = ReviewSessionController(_resolver(), service, ui=ui)

        outcome = controller.run(ReviewRequest(pr_id=42))

        assert ui.effects[0] == ShowFile(0)
        assert ShowFile(1) in ui.effects
        assert isinstance(ui.effects[-1], Submit)
        assert Phase.PRESENTING in controller.history and Phase.DRAFTING in controller.history
        assert controller.history[-2:] == [Phase.SUBMITTING, Phase.DONE]
        service.submit_decision.assert_called_once_with("acme", "api", 42, Decision.APPROVE, None)
        service.submit_comment.assert_called_once_with("acme", "api", 42, InlineComment("src/b.py", 7, "nit"))
        assert outcome.decision is Decision.APPROVE

    def test_flagged_inline_comments_seed_draft(self):
        service = _service()
        seeded = InlineComment("src/a.py", 1, "from flag")
        ui = ScriptedUI([Decide(Decision.REQUEST_CHANGES)])
        ReviewSessionController(_resolver(), service, ui=ui).run(ReviewRequest(pr_id=42, inline_comments=(seeded,)))
        service.submit_comment.assert_called_once_with("acme", "api", 42, seeded)

    def test_quit_submits_nothing(self):
        service = _service()
        ui = ScriptedUI([StartComment(), AddComment(1, "x"), Quit()])
        controller = ReviewSessionController(_resolver(), service, ui=ui)

        assert controller.run(ReviewRequest(pr_id=42)) is None

        assert controller.phase is Phase.ABORTED
        service.submit_decision.assert_not_called()
        service.submit_comment.assert_not_called()
