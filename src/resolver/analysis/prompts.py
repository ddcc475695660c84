"""Prompt templates for triage and consolidation.

Neither prompt relies on structured-output features of the provider: triage
asks for a JSON object in free text, consolidation asks for Markdown with a
fixed set of ``### `` category headers.

Usage:
    from resolver.analysis.prompts import build_triage_prompt, build_consolidation_prompt

    prompt = build_triage_prompt(item, automated_sender=False)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from resolver.models import NormalizedItem, TriageResult


# ---------------------------------------------------------------------------
# Category taxonomy
# ---------------------------------------------------------------------------

CATEGORY_TECHNICAL = "Technical Queries & Issues"
CATEGORY_FEATURE = "Feature & Implementation Requests"
CATEGORY_SERVICE = "Service & Billing Changes"
CATEGORY_MEETING = "Meeting & Scheduling Requests"
CATEGORY_GENERAL = "General Inquiries & Communications"

CATEGORIES = (
    CATEGORY_TECHNICAL,
    CATEGORY_FEATURE,
    CATEGORY_SERVICE,
    CATEGORY_MEETING,
    CATEGORY_GENERAL,
)

CATEGORY_HINTS = {
    CATEGORY_TECHNICAL: "technical problems, bugs, errors, integration issues",
    CATEGORY_FEATURE: "feature requests, enhancement ideas, implementation asks",
    CATEGORY_SERVICE: "service changes, billing requests, account or plan changes",
    CATEGORY_MEETING: "meeting requests, call scheduling, availability",
    CATEGORY_GENERAL: "general questions, informational messages, anything else",
}

REPORT_TITLE = "**Consolidated Feedback Analysis Report**"

TAG_RELEVANT = "RELEVANT"
TAG_GENERAL = "GENERAL"


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_TRIAGE_TEMPLATE = """\
Analyze the message below and decide whether it is a relevant business \
communication, and whether it needs a reply.

Guidelines:
- Relevant: questions, feedback, feature requests, support issues, business \
inquiries, meeting requests
- Not relevant: spam, marketing, newsletters, automated notifications, \
receipts, out-of-office replies
- Replyable: only when the sender is a real person who expects a response \
AND the message asks for an answer or an action. Never for automated or \
no-reply senders.
{sender_note}
Return ONLY a JSON object with these fields:
- "isRelevant" (boolean): true if business-relevant
- "isReplyable" (boolean): true if a reply should be sent
- "cleanedMessage" (string): the complete message with greetings, \
signatures and quoted history removed; keep every request and detail
- "suggestedReply" (string or null): when replyable, a complete, polite, \
ready-to-send reply that addresses every point; otherwise null
- "replyConfidence" (number 0-1 or null): how confident you are the \
suggested reply is correct and appropriate to send as-is
- "replyReason" (string or null): one sentence on why a reply is needed

Message:
---
From: {sender}
Subject: {subject}
Date: {date}

{body}
---

JSON response:\
"""

_AUTOMATED_SENDER_NOTE = (
    "\nNOTE: this sender is an automated or no-reply address. "
    "Set isReplyable to false.\n"
)

_CONSOLIDATION_TEMPLATE = """\
Below are {item_count} feedback messages (batch {chunk_number} of \
{total_chunks}), separated by "---". Each message is tagged {tag_relevant} \
(business-relevant) or {tag_general} (everything else).

Write a categorized Markdown report section that covers EVERY message. Do \
not skip any message and do not invent information.

Use exactly this structure, omitting a category only if no message belongs \
in it:

{title}

{category_sections}

Rules:
- Put each message under the single best-fitting category; when unsure use \
"{general}"
- One bullet per message, starting with "*   " and ending with the sender \
as "(From: name/email)"
- Keep bullets short and factual
- For messages that need a reply, add an indented line \
"Suggested reply: ..." with a short contextual reply

Messages:
---
{messages}
---

Report:\
"""


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------


def build_triage_prompt(item: NormalizedItem, automated_sender: bool = False) -> str:
    """Build the per-item classification prompt.

    Args:
        item: The item to classify
        automated_sender: Whether the sender matched a no-reply pattern

    Returns:
        Complete prompt string
    """
    return _TRIAGE_TEMPLATE.format(
        sender_note=_AUTOMATED_SENDER_NOTE if automated_sender else "",
        sender=item.sender,
        subject=item.subject,
        date=item.date,
        body=item.body,
    )


def format_result_for_consolidation(result: TriageResult) -> str:
    """Format one triage result as a message block for the consolidation prompt."""
    tag = TAG_RELEVANT if result.is_relevant else TAG_GENERAL
    item = result.source_item
    lines = [
        f"[{tag}] (From: {item.sender})",
        f"Subject: {item.subject}",
    ]
    if result.is_replyable:
        lines.append("Needs reply: yes")
    lines.append("")
    lines.append(result.cleaned_message or item.body)
    return "\n".join(lines)


def build_consolidation_prompt(
    chunk: list[TriageResult],
    chunk_number: int,
    total_chunks: int,
) -> str:
    """Build the categorization prompt for one chunk of triage results.

    Args:
        chunk: Triage results in this chunk (input order)
        chunk_number: 1-indexed chunk number
        total_chunks: Total number of chunks in the run

    Returns:
        Complete prompt string
    """
    category_sections = "\n\n".join(
        f"### {name}\n*   [{CATEGORY_HINTS[name]}, with sender attribution]"
        for name in CATEGORIES
    )
    messages = "\n\n---\n\n".join(format_result_for_consolidation(r) for r in chunk)
    return _CONSOLIDATION_TEMPLATE.format(
        item_count=len(chunk),
        chunk_number=chunk_number,
        total_chunks=total_chunks,
        tag_relevant=TAG_RELEVANT,
        tag_general=TAG_GENERAL,
        title=REPORT_TITLE,
        category_sections=category_sections,
        general=CATEGORY_GENERAL,
        messages=messages,
    )
