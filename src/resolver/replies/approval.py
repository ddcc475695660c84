"""Approval workflow gating every outbound reply.

Three policies decide which suggested replies may be sent:

- interactive: the operator decides each candidate individually (approve,
  edit, skip), can skip all remaining candidates, or quit. There is no
  approve-all action.
- auto: every candidate is approved without prompting.
- threshold: candidates with confidence >= threshold are approved, the rest
  are skipped, without prompting.

Whatever the policy, at most ``max_replies_per_run`` candidates are approved;
once the cap is reached the remaining candidates are skipped. In dry-run mode
nothing is approved: the outcome only previews what the policy would do.

Candidate lifecycle: pending -> approved | edited | skipped. Candidates still
pending after a quit are left undecided and are never sent.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Literal, Protocol

import click
from rich.console import Console
from rich.panel import Panel

from resolver.core.logging import get_logger
from resolver.models import ApprovalOutcome, ApprovedReply, ReplyCandidate, ReplyDecision

if TYPE_CHECKING:
    from collections.abc import Iterable

    from resolver.models import TriageResult

logger = get_logger(__name__)

ApprovalPolicy = Literal["interactive", "auto", "threshold"]

DEFAULT_MAX_REPLIES = 50
DEFAULT_THRESHOLD = 0.8


class ApprovalChoice(str, Enum):
    APPROVE = "approve"
    EDIT = "edit"
    SKIP = "skip"
    SKIP_ALL = "skip_all"
    QUIT = "quit"


class ApprovalPrompter(Protocol):
    """Asks the operator about one candidate at a time."""

    def choose(self, candidate: ReplyCandidate, position: int, total: int) -> ApprovalChoice: ...

    def edit(self, candidate: ReplyCandidate) -> str | None:
        """Return the edited reply text, or None/blank to abandon the edit."""
        ...


def candidates_from(results: Iterable[TriageResult]) -> list[ReplyCandidate]:
    """Reply candidates for every replyable triage result, in order."""
    return [
        ReplyCandidate(
            source_item=result.source_item,
            suggested_reply=result.suggested_reply,
            confidence=result.reply_confidence,
            reason=result.reply_reason,
        )
        for result in results
        if result.is_replyable and result.suggested_reply
    ]


class ReplyApprovalWorkflow:
    """Applies an approval policy to reply candidates.

    Attributes:
        policy: 'interactive', 'auto' or 'threshold'
        max_replies_per_run: Cap on approvals per run
        confidence_threshold: Minimum confidence for the threshold policy
        dry_run: Preview decisions without approving anything
    """

    def __init__(
        self,
        policy: ApprovalPolicy = "interactive",
        max_replies_per_run: int = DEFAULT_MAX_REPLIES,
        confidence_threshold: float = DEFAULT_THRESHOLD,
        prompter: ApprovalPrompter | None = None,
        dry_run: bool = False,
    ) -> None:
        if policy not in ("interactive", "auto", "threshold"):
            raise ValueError(f"Unknown approval policy: {policy!r}")
        if policy == "interactive" and prompter is None and not dry_run:
            raise ValueError("The interactive policy needs a prompter")
        self.policy = policy
        self.max_replies_per_run = max_replies_per_run
        self.confidence_threshold = confidence_threshold
        self.prompter = prompter
        self.dry_run = dry_run

    def _passes_threshold(self, candidate: ReplyCandidate) -> bool:
        return (candidate.confidence or 0.0) >= self.confidence_threshold

    def run(self, candidates: list[ReplyCandidate]) -> ApprovalOutcome:
        """Decide every candidate according to the policy.

        Returns:
            ApprovalOutcome with approved replies in decision order
        """
        if self.dry_run:
            outcome = self._preview(candidates)
        elif self.policy == "interactive":
            outcome = self._run_interactive(candidates)
        else:
            outcome = self._run_unattended(candidates)

        logger.info(
            "approval_finished",
            policy=self.policy,
            dry_run=self.dry_run,
            candidates=len(candidates),
            approved=len(outcome.approved),
            skipped=len(outcome.skipped),
            pending=len(outcome.pending),
            quit=outcome.quit,
        )
        return outcome

    def _preview(self, candidates: list[ReplyCandidate]) -> ApprovalOutcome:
        if self.policy == "threshold":
            eligible = [c for c in candidates if self._passes_threshold(c)]
        else:
            eligible = list(candidates)
        return ApprovalOutcome(
            candidates=candidates,
            dry_run=True,
            preview=eligible[: self.max_replies_per_run],
        )

    def _run_unattended(self, candidates: list[ReplyCandidate]) -> ApprovalOutcome:
        outcome = ApprovalOutcome(candidates=candidates)
        for candidate in candidates:
            eligible = self.policy == "auto" or self._passes_threshold(candidate)
            if eligible and len(outcome.approved) < self.max_replies_per_run:
                self._approve(outcome, candidate, candidate.suggested_reply, edited=False)
            else:
                if eligible:
                    logger.debug("reply_cap_reached", item_id=candidate.source_item.id)
                candidate.decision = ReplyDecision.SKIPPED
        return outcome

    def _run_interactive(self, candidates: list[ReplyCandidate]) -> ApprovalOutcome:
        prompter = self.prompter
        if prompter is None:
            raise ValueError("The interactive policy needs a prompter")
        outcome = ApprovalOutcome(candidates=candidates)
        total = len(candidates)

        for index, candidate in enumerate(candidates):
            if len(outcome.approved) >= self.max_replies_per_run:
                logger.info(
                    "reply_cap_reached",
                    cap=self.max_replies_per_run,
                    remaining=total - index,
                )
                self._skip_from(candidates, index)
                break

            choice = prompter.choose(candidate, index + 1, total)

            if choice == ApprovalChoice.QUIT:
                outcome.quit = True
                break
            if choice == ApprovalChoice.SKIP_ALL:
                self._skip_from(candidates, index)
                break
            if choice == ApprovalChoice.APPROVE:
                self._approve(outcome, candidate, candidate.suggested_reply, edited=False)
            elif choice == ApprovalChoice.EDIT:
                edited = prompter.edit(candidate)
                if edited and edited.strip():
                    self._approve(outcome, candidate, edited.strip(), edited=True)
                else:
                    candidate.decision = ReplyDecision.SKIPPED
            else:
                candidate.decision = ReplyDecision.SKIPPED

        return outcome

    @staticmethod
    def _approve(
        outcome: ApprovalOutcome,
        candidate: ReplyCandidate,
        text: str,
        edited: bool,
    ) -> None:
        candidate.decision = ReplyDecision.EDITED if edited else ReplyDecision.APPROVED
        candidate.final_text = text
        outcome.approved.append(ApprovedReply(candidate=candidate, final_text=text))

    @staticmethod
    def _skip_from(candidates: list[ReplyCandidate], start: int) -> None:
        for candidate in candidates[start:]:
            if candidate.decision == ReplyDecision.PENDING:
                candidate.decision = ReplyDecision.SKIPPED


# ---------------------------------------------------------------------------
# Console prompter
# ---------------------------------------------------------------------------

BODY_PREVIEW_CHARS = 200


class ConsoleApprovalPrompter:
    """Terminal prompter using rich panels and click prompts."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def choose(self, candidate: ReplyCandidate, position: int, total: int) -> ApprovalChoice:
        item = candidate.source_item
        body = item.body if len(item.body) <= BODY_PREVIEW_CHARS else (
            item.body[:BODY_PREVIEW_CHARS] + "..."
        )
        confidence = (
            f"{candidate.confidence:.0%}" if candidate.confidence is not None else "n/a"
        )
        header = (
            f"[bold]From:[/bold] {item.sender}\n"
            f"[bold]Subject:[/bold] {item.subject}\n"
            f"[bold]Date:[/bold] {item.date}\n"
            f"[bold]Confidence:[/bold] {confidence}\n"
            f"[bold]Reason:[/bold] {candidate.reason or 'n/a'}"
        )
        self.console.print(
            Panel(f"{header}\n\n{body}", title=f"Reply {position}/{total}", expand=False)
        )
        self.console.print(Panel(candidate.suggested_reply, title="Suggested reply", style="cyan"))

        answer = click.prompt(
            "Action",
            type=click.Choice([choice.value for choice in ApprovalChoice]),
            default=ApprovalChoice.SKIP.value,
            show_choices=True,
            err=self.console.stderr,
        )
        return ApprovalChoice(answer)

    def edit(self, candidate: ReplyCandidate) -> str | None:
        return click.edit(candidate.suggested_reply)
