"""Tests for the reply approval workflow."""

import io

import pytest
from conftest import make_item, make_result
from rich.console import Console

from resolver.models import ReplyCandidate, ReplyDecision
from resolver.replies.approval import (
    ApprovalChoice,
    ConsoleApprovalPrompter,
    ReplyApprovalWorkflow,
    candidates_from,
)


def _candidates(confidences: list[float | None]) -> list[ReplyCandidate]:
    return [
        ReplyCandidate(
            source_item=make_item(f"c{n}"),
            suggested_reply=f"Reply {n}",
            confidence=confidence,
        )
        for n, confidence in enumerate(confidences)
    ]


class ScriptedPrompter:
    """Answers choose() from a list; edit() returns a fixed text."""

    def __init__(self, choices: list[ApprovalChoice], edited_text: str | None = None) -> None:
        self.choices = list(choices)
        self.edited_text = edited_text
        self.asked: list[str] = []

    def choose(self, candidate: ReplyCandidate, position: int, total: int) -> ApprovalChoice:
        self.asked.append(candidate.source_item.id)
        return self.choices.pop(0)

    def edit(self, candidate: ReplyCandidate) -> str | None:
        return self.edited_text


def _decisions(candidates: list[ReplyCandidate]) -> list[ReplyDecision]:
    return [c.decision for c in candidates]


class TestCandidatesFrom:
    def test_only_replyable_with_suggestion(self) -> None:
        results = [
            make_result(make_item("a"), is_replyable=True, suggested_reply="Hi", reply_confidence=0.7),
            make_result(make_item("b"), is_replyable=False, suggested_reply="Hi"),
            make_result(make_item("c"), is_replyable=True, suggested_reply=None),
        ]
        candidates = candidates_from(results)
        assert [c.source_item.id for c in candidates] == ["a"]
        assert candidates[0].confidence == 0.7
        assert candidates[0].decision == ReplyDecision.PENDING


class TestUnattendedPolicies:
    def test_threshold_respects_cap(self) -> None:
        candidates = _candidates([0.9, 0.95, 0.85, 0.99, 0.1])
        outcome = ReplyApprovalWorkflow(
            "threshold", max_replies_per_run=2, confidence_threshold=0.8
        ).run(candidates)

        assert [a.candidate.source_item.id for a in outcome.approved] == ["c0", "c1"]
        assert _decisions(candidates) == [
            ReplyDecision.APPROVED,
            ReplyDecision.APPROVED,
            ReplyDecision.SKIPPED,
            ReplyDecision.SKIPPED,
            ReplyDecision.SKIPPED,
        ]
        assert outcome.pending == []

    def test_threshold_missing_confidence_is_zero(self) -> None:
        candidates = _candidates([None, 0.8])
        outcome = ReplyApprovalWorkflow("threshold", confidence_threshold=0.8).run(candidates)
        assert [a.candidate.source_item.id for a in outcome.approved] == ["c1"]
        assert candidates[0].decision == ReplyDecision.SKIPPED

    def test_auto_approves_up_to_cap(self) -> None:
        candidates = _candidates([0.1, 0.2, 0.3])
        outcome = ReplyApprovalWorkflow("auto", max_replies_per_run=2).run(candidates)
        assert len(outcome.approved) == 2
        assert outcome.approved[0].final_text == "Reply 0"
        assert candidates[2].decision == ReplyDecision.SKIPPED

    def test_zero_cap_approves_nothing(self) -> None:
        candidates = _candidates([0.9, 0.9])
        outcome = ReplyApprovalWorkflow("auto", max_replies_per_run=0).run(candidates)
        assert outcome.approved == []
        assert len(outcome.skipped) == 2

    def test_unknown_policy(self) -> None:
        with pytest.raises(ValueError, match="Unknown approval policy"):
            ReplyApprovalWorkflow("approve_all")


class TestInteractivePolicy:
    def test_needs_prompter(self) -> None:
        with pytest.raises(ValueError):
            ReplyApprovalWorkflow("interactive")

    def test_approve_edit_skip(self) -> None:
        candidates = _candidates([0.9, 0.9, 0.9])
        prompter = ScriptedPrompter(
            [ApprovalChoice.APPROVE, ApprovalChoice.EDIT, ApprovalChoice.SKIP],
            edited_text="  Custom answer  ",
        )
        outcome = ReplyApprovalWorkflow("interactive", prompter=prompter).run(candidates)

        assert _decisions(candidates) == [
            ReplyDecision.APPROVED,
            ReplyDecision.EDITED,
            ReplyDecision.SKIPPED,
        ]
        assert [a.final_text for a in outcome.approved] == ["Reply 0", "Custom answer"]
        assert candidates[1].final_text == "Custom answer"

    def test_blank_edit_counts_as_skip(self) -> None:
        candidates = _candidates([0.9])
        prompter = ScriptedPrompter([ApprovalChoice.EDIT], edited_text="   ")
        outcome = ReplyApprovalWorkflow("interactive", prompter=prompter).run(candidates)
        assert outcome.approved == []
        assert candidates[0].decision == ReplyDecision.SKIPPED

    def test_quit_leaves_rest_pending(self) -> None:
        candidates = _candidates([0.9, 0.9, 0.9, 0.9])
        prompter = ScriptedPrompter([ApprovalChoice.APPROVE, ApprovalChoice.QUIT])
        outcome = ReplyApprovalWorkflow("interactive", prompter=prompter).run(candidates)

        assert outcome.quit is True
        assert len(outcome.approved) == 1
        assert _decisions(candidates)[1:] == [ReplyDecision.PENDING] * 3
        assert len(outcome.pending) == 3

    def test_skip_all(self) -> None:
        candidates = _candidates([0.9, 0.9, 0.9])
        prompter = ScriptedPrompter([ApprovalChoice.APPROVE, ApprovalChoice.SKIP_ALL])
        outcome = ReplyApprovalWorkflow("interactive", prompter=prompter).run(candidates)

        assert outcome.quit is False
        assert _decisions(candidates) == [
            ReplyDecision.APPROVED,
            ReplyDecision.SKIPPED,
            ReplyDecision.SKIPPED,
        ]
        assert prompter.asked == ["c0", "c1"]

    def test_cap_stops_prompting(self) -> None:
        candidates = _candidates([0.9, 0.9, 0.9])
        prompter = ScriptedPrompter([ApprovalChoice.APPROVE] * 3)
        outcome = ReplyApprovalWorkflow(
            "interactive", max_replies_per_run=1, prompter=prompter
        ).run(candidates)

        assert len(outcome.approved) == 1
        assert prompter.asked == ["c0"]
        assert _decisions(candidates)[1:] == [ReplyDecision.SKIPPED] * 2


class TestDryRun:
    def test_preview_without_approving(self) -> None:
        candidates = _candidates([0.9, 0.5, 0.95])
        outcome = ReplyApprovalWorkflow(
            "threshold", confidence_threshold=0.8, dry_run=True
        ).run(candidates)

        assert outcome.dry_run is True
        assert outcome.approved == []
        assert [c.source_item.id for c in outcome.preview] == ["c0", "c2"]
        assert all(c.decision == ReplyDecision.PENDING for c in candidates)

    def test_interactive_dry_run_needs_no_prompter(self) -> None:
        candidates = _candidates([0.2, 0.3])
        outcome = ReplyApprovalWorkflow(
            "interactive", max_replies_per_run=1, dry_run=True
        ).run(candidates)
        assert len(outcome.preview) == 1
        assert outcome.approved == []

    def test_interactive_run_without_prompter_raises(self) -> None:
        workflow = ReplyApprovalWorkflow("interactive", dry_run=True)
        workflow.dry_run = False
        with pytest.raises(ValueError, match="needs a prompter"):
            workflow.run(_candidates([0.9]))


class TestConsolePrompter:
    @pytest.mark.parametrize("stderr", [True, False])
    def test_prompt_follows_console_stream(
        self, monkeypatch: pytest.MonkeyPatch, stderr: bool
    ) -> None:
        calls: list[dict] = []

        def fake_prompt(text: str, **kwargs) -> str:
            calls.append(kwargs)
            return "approve"

        monkeypatch.setattr("resolver.replies.approval.click.prompt", fake_prompt)
        console = Console(stderr=stderr, file=io.StringIO())
        choice = ConsoleApprovalPrompter(console).choose(_candidates([0.9])[0], 1, 1)

        assert choice == ApprovalChoice.APPROVE
        assert calls[0]["err"] is stderr
