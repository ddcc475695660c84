"""Sequential, paced dispatch of approved replies.

Sends go out one at a time with a short pause between them. Every send is
attempted; a failure is recorded against its item and the next reply is sent
anyway. Replies already sent are never rolled back.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import regex

from resolver.core.errors import ResolverError
from resolver.core.logging import get_logger
from resolver.models import DispatchFailure, DispatchSummary, OutgoingReply, SendResult

if TYPE_CHECKING:
    from resolver.interfaces import MailSender
    from resolver.models import ApprovedReply

logger = get_logger(__name__)

DEFAULT_SEND_DELAY_SECONDS = 0.5

ANGLE_ADDRESS_PATTERN = regex.compile(r"<([^<>]+)>")
REPLY_PREFIX_PATTERN = regex.compile(r"^\s*re:", regex.IGNORECASE)


def extract_address(sender: str) -> str:
    """'Jane Doe <jane@x.com>' -> 'jane@x.com'; bare addresses pass through."""
    match = ANGLE_ADDRESS_PATTERN.search(sender, timeout=1.0)
    return (match.group(1) if match else sender).strip()


def reply_subject(subject: str) -> str:
    """Prefix 'Re: ' unless the subject already carries a reply prefix."""
    subject = subject.strip()
    if REPLY_PREFIX_PATTERN.match(subject):
        return subject
    return f"Re: {subject}"


def compose_reply(approved: ApprovedReply) -> OutgoingReply:
    """Address a reply to the original sender, threaded to its conversation."""
    item = approved.candidate.source_item
    return OutgoingReply(
        to=extract_address(item.sender),
        subject=reply_subject(item.subject),
        body=approved.final_text,
        thread_id=item.thread_id or item.id,
        in_reply_to=item.id,
    )


class ReplyDispatcher:
    """Sends approved replies through a MailSender.

    Attributes:
        send_delay_seconds: Pause between consecutive sends
    """

    def __init__(
        self,
        sender: MailSender,
        send_delay_seconds: float = DEFAULT_SEND_DELAY_SECONDS,
    ) -> None:
        self._sender = sender
        self.send_delay_seconds = send_delay_seconds

    async def _send_one(self, reply: OutgoingReply) -> SendResult:
        try:
            return await self._sender.send(reply)
        except ResolverError as e:
            return SendResult(success=False, error=str(e))

    async def dispatch(self, approved: list[ApprovedReply]) -> DispatchSummary:
        """Send every approved reply, in order.

        Returns:
            DispatchSummary with sent/failed counts and failure details
        """
        summary = DispatchSummary()

        for index, entry in enumerate(approved):
            if index > 0 and self.send_delay_seconds > 0:
                await asyncio.sleep(self.send_delay_seconds)

            reply = compose_reply(entry)
            item_id = entry.candidate.source_item.id
            summary.attempted += 1
            result = await self._send_one(reply)

            if result.success:
                summary.sent += 1
                if result.message_id:
                    summary.sent_message_ids.append(result.message_id)
                logger.info("reply_sent", item_id=item_id, to=reply.to, message_id=result.message_id)
            else:
                summary.failed += 1
                error = result.error or "unknown error"
                summary.failures.append(DispatchFailure(item_id=item_id, to=reply.to, error=error))
                logger.error("reply_send_failed", item_id=item_id, to=reply.to, error=error)

        logger.info(
            "dispatch_complete",
            attempted=summary.attempted,
            sent=summary.sent,
            failed=summary.failed,
        )
        return summary
