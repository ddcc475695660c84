"""Reply approval and dispatch.

Usage:
    from resolver.replies import ReplyApprovalWorkflow, ReplyDispatcher

    outcome = ReplyApprovalWorkflow(policy="threshold", confidence_threshold=0.8).run(candidates)
    summary = await ReplyDispatcher(sender).dispatch(outcome.approved)
"""

from resolver.replies.approval import (
    ApprovalChoice,
    ApprovalPrompter,
    ConsoleApprovalPrompter,
    ReplyApprovalWorkflow,
    candidates_from,
)
from resolver.replies.dispatch import ReplyDispatcher, compose_reply

__all__ = [
    "ApprovalChoice",
    "ApprovalPrompter",
    "ConsoleApprovalPrompter",
    "ReplyApprovalWorkflow",
    "ReplyDispatcher",
    "candidates_from",
    "compose_reply",
]
