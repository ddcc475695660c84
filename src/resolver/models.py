"""Data records passed between pipeline stages.

Usage:
    from resolver.models import NormalizedItem, TriageResult

    item = NormalizedItem(id="file-3f2a9c", sender="a@x.com", subject="Bug",
                          date="2026-01-05T10:00:00+00:00", body="Login fails.")
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True, slots=True)
class NormalizedItem:
    """One feedback message in canonical form.

    Attributes:
        id: Stable identifier, unique within one run
        sender: Sender display string (may include "Name <address>")
        subject: Subject line or derived title
        date: ISO timestamp or the source's native date string
        body: Plain-text body, never empty once it reaches triage
        thread_id: Conversation id for threading replies (may equal id)
    """

    id: str
    sender: str
    subject: str
    date: str
    body: str
    thread_id: str = ""


@dataclass
class TriageResult:
    """Outcome of classifying a single item.

    ``error`` is set when the generation call or response parsing failed and
    the safe defaults were used instead.
    """

    source_item: NormalizedItem
    is_relevant: bool = False
    is_replyable: bool = False
    cleaned_message: str = ""
    suggested_reply: str | None = None
    reply_reason: str | None = None
    reply_confidence: float | None = None
    error: str | None = None

    @classmethod
    def fallback(cls, item: NormalizedItem, error: str) -> TriageResult:
        """Safe default: not relevant, not replyable, original body kept."""
        return cls(source_item=item, cleaned_message=item.body, error=error)


@dataclass
class ReportSummary:
    total_items: int = 0
    relevant_items: int = 0
    general_items: int = 0
    categories: list[str] = field(default_factory=list)
    key_insights: list[str] = field(default_factory=list)


@dataclass
class ReportMetadata:
    provider: str
    model: str | None = None
    chunks: int = 0
    failed_chunks: int = 0


@dataclass
class ConsolidatedReport:
    """Final categorized report for one run."""

    timestamp: str
    summary: ReportSummary
    analysis_text: str
    metadata: ReportMetadata

    @property
    def is_empty(self) -> bool:
        return self.summary.total_items == 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ReplyDecision(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EDITED = "edited"
    SKIPPED = "skipped"


@dataclass
class ReplyCandidate:
    """A suggested reply awaiting an approval decision.

    ``final_text`` is the text that will be sent: the suggestion for an
    approved candidate, the operator's text for an edited one.
    """

    source_item: NormalizedItem
    suggested_reply: str
    confidence: float | None = None
    reason: str | None = None
    decision: ReplyDecision = ReplyDecision.PENDING
    final_text: str | None = None

    @property
    def is_approved(self) -> bool:
        return self.decision in (ReplyDecision.APPROVED, ReplyDecision.EDITED)


@dataclass(frozen=True, slots=True)
class ApprovedReply:
    candidate: ReplyCandidate
    final_text: str


@dataclass
class ApprovalOutcome:
    """Result of running the approval workflow over all candidates.

    Attributes:
        candidates: Every candidate, with its decision set (or left pending)
        approved: Approved replies in decision order
        quit: True when the operator stopped the session early
        dry_run: True when nothing was marked approved for dispatch
        preview: Candidates the policy would have approved (dry run only)
    """

    candidates: list[ReplyCandidate] = field(default_factory=list)
    approved: list[ApprovedReply] = field(default_factory=list)
    quit: bool = False
    dry_run: bool = False
    preview: list[ReplyCandidate] = field(default_factory=list)

    @property
    def skipped(self) -> list[ReplyCandidate]:
        return [c for c in self.candidates if c.decision == ReplyDecision.SKIPPED]

    @property
    def pending(self) -> list[ReplyCandidate]:
        return [c for c in self.candidates if c.decision == ReplyDecision.PENDING]


@dataclass(frozen=True, slots=True)
class OutgoingReply:
    to: str
    subject: str
    body: str
    thread_id: str
    in_reply_to: str


@dataclass(frozen=True, slots=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class DispatchFailure:
    item_id: str
    to: str
    error: str


@dataclass
class DispatchSummary:
    """Per-run totals of reply sends."""

    attempted: int = 0
    sent: int = 0
    failed: int = 0
    sent_message_ids: list[str] = field(default_factory=list)
    failures: list[DispatchFailure] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    channel: str
    success: bool
    error: str | None = None
    location: str | None = None


@dataclass(frozen=True, slots=True)
class FetchedMessage:
    """A message as returned by a mail transport, before cleaning."""

    id: str
    sender: str
    subject: str
    date: str
    body: str
    thread_id: str = ""
    is_html: bool = False
