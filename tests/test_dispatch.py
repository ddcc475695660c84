"""Tests for reply composition and paced dispatch."""

from unittest.mock import AsyncMock, patch

import pytest
from conftest import make_item

from resolver.core.errors import GraphAPIError
from resolver.models import (
    ApprovedReply,
    OutgoingReply,
    ReplyCandidate,
    ReplyDecision,
    SendResult,
)
from resolver.replies.dispatch import (
    ReplyDispatcher,
    compose_reply,
    extract_address,
    reply_subject,
)


def _approved(item_id: str, sender: str = "Jane <jane@example.com>") -> ApprovedReply:
    candidate = ReplyCandidate(
        source_item=make_item(item_id, sender=sender, subject="Login problem"),
        suggested_reply="We are on it.",
        decision=ReplyDecision.APPROVED,
        final_text="We are on it.",
    )
    return ApprovedReply(candidate=candidate, final_text="We are on it.")


class RecordingSender:
    """MailSender double; fails for recipients listed in fail_for."""

    def __init__(self, fail_for: tuple[str, ...] = (), raise_for: tuple[str, ...] = ()) -> None:
        self.fail_for = fail_for
        self.raise_for = raise_for
        self.sent: list[OutgoingReply] = []

    async def send(self, reply: OutgoingReply) -> SendResult:
        self.sent.append(reply)
        if reply.to in self.raise_for:
            raise GraphAPIError("Graph API error (503)", status_code=503)
        if reply.to in self.fail_for:
            return SendResult(success=False, error="mailbox full")
        return SendResult(success=True, message_id=f"sent-{reply.in_reply_to}")


class TestComposeReply:
    @pytest.mark.parametrize(
        ("sender", "expected"),
        [
            ("Jane Doe <jane@example.com>", "jane@example.com"),
            ("jane@example.com", "jane@example.com"),
            ("  bob@example.com ", "bob@example.com"),
        ],
    )
    def test_extract_address(self, sender: str, expected: str) -> None:
        assert extract_address(sender) == expected

    @pytest.mark.parametrize(
        ("subject", "expected"),
        [
            ("Login problem", "Re: Login problem"),
            ("Re: Login problem", "Re: Login problem"),
            ("RE: Login problem", "RE: Login problem"),
        ],
    )
    def test_reply_subject(self, subject: str, expected: str) -> None:
        assert reply_subject(subject) == expected

    def test_threads_to_original(self) -> None:
        reply = compose_reply(_approved("m1"))
        assert reply.to == "jane@example.com"
        assert reply.subject == "Re: Login problem"
        assert reply.body == "We are on it."
        assert reply.thread_id == "conv-m1"
        assert reply.in_reply_to == "m1"


class TestReplyDispatcher:
    async def test_failure_does_not_stop_later_sends(self) -> None:
        sender = RecordingSender(fail_for=("b@example.com",))
        approved = [
            _approved("m1", "a@example.com"),
            _approved("m2", "b@example.com"),
            _approved("m3", "c@example.com"),
        ]
        summary = await ReplyDispatcher(sender, send_delay_seconds=0).dispatch(approved)

        assert summary.attempted == 3
        assert summary.sent == 2
        assert summary.failed == 1
        assert summary.sent_message_ids == ["sent-m1", "sent-m3"]
        assert summary.failures[0].item_id == "m2"
        assert summary.failures[0].error == "mailbox full"
        assert [r.to for r in sender.sent] == ["a@example.com", "b@example.com", "c@example.com"]

    async def test_raised_error_becomes_failure(self) -> None:
        sender = RecordingSender(raise_for=("a@example.com",))
        summary = await ReplyDispatcher(sender, send_delay_seconds=0).dispatch(
            [_approved("m1", "a@example.com"), _approved("m2", "b@example.com")]
        )
        assert summary.failed == 1
        assert summary.sent == 1
        assert "503" in summary.failures[0].error

    async def test_pauses_only_between_sends(self) -> None:
        sender = RecordingSender()
        approved = [_approved(f"m{n}", f"u{n}@example.com") for n in range(3)]
        with patch("resolver.replies.dispatch.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await ReplyDispatcher(sender, send_delay_seconds=0.5).dispatch(approved)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    async def test_nothing_to_send(self) -> None:
        summary = await ReplyDispatcher(RecordingSender()).dispatch([])
        assert summary.attempted == 0
        assert summary.sent == 0
