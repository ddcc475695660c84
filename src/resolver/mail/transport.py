"""Fetch and reply to Outlook messages.

GraphMailTransport implements both the fetch side (unread messages in a
lookback window) and the send side (threaded replies) of the pipeline's mail
collaborator. Graph calls are synchronous and run in worker threads.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from resolver.core.errors import ResolverError
from resolver.core.logging import get_logger
from resolver.models import FetchedMessage, SendResult

if TYPE_CHECKING:
    from resolver.interfaces import MailFilter
    from resolver.mail.client import GraphClient
    from resolver.models import OutgoingReply

logger = get_logger(__name__)

MESSAGE_FIELDS = "id,conversationId,subject,from,toRecipients,ccRecipients,receivedDateTime,body"

# Graph returns at most this many messages per page
PAGE_SIZE = 50
MAX_PAGES = 20


def _format_sender(data: dict[str, Any]) -> str:
    address = data.get("from", {}).get("emailAddress", {})
    email = address.get("address", "")
    name = address.get("name", "")
    if name and email and name != email:
        return f"{name} <{email}>"
    return email or name


def _recipient_addresses(data: dict[str, Any]) -> set[str]:
    recipients = data.get("toRecipients", []) + data.get("ccRecipients", [])
    return {
        r.get("emailAddress", {}).get("address", "").lower()
        for r in recipients
        if r.get("emailAddress", {}).get("address")
    }


def to_fetched_message(data: dict[str, Any]) -> FetchedMessage:
    """Map a Graph message resource to a FetchedMessage."""
    body = data.get("body") or {}
    return FetchedMessage(
        id=data.get("id", ""),
        sender=_format_sender(data),
        subject=data.get("subject") or "",
        date=data.get("receivedDateTime") or "",
        body=body.get("content") or "",
        thread_id=data.get("conversationId") or data.get("id", ""),
        is_html=(body.get("contentType") or "").lower() == "html",
    )


class GraphMailTransport:
    """MailFetcher and MailSender backed by Microsoft Graph.

    Attributes:
        client: GraphClient used for every call
        folder: Well-known folder name or folder id to read from
    """

    def __init__(self, client: GraphClient, folder: str = "inbox") -> None:
        self.client = client
        self.folder = folder

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def _list_sync(self, mail_filter: MailFilter) -> list[FetchedMessage]:
        cutoff = datetime.now(UTC) - timedelta(days=mail_filter.lookback_days)
        filters = [f"receivedDateTime ge {cutoff.strftime('%Y-%m-%dT%H:%M:%SZ')}"]
        if mail_filter.unread_only:
            filters.append("isRead eq false")

        target = mail_filter.target_address.lower() if mail_filter.target_address else None
        endpoint: str | None = f"/me/mailFolders/{self.folder}/messages"
        params: dict[str, Any] | None = {
            "$select": MESSAGE_FIELDS,
            "$filter": " and ".join(filters),
            "$orderby": "receivedDateTime desc",
            "$top": min(PAGE_SIZE, mail_filter.max_results) if not target else PAGE_SIZE,
        }

        messages: list[FetchedMessage] = []
        pages = 0
        while endpoint and len(messages) < mail_filter.max_results and pages < MAX_PAGES:
            data = self.client.get(endpoint, params=params)
            pages += 1
            for raw in data.get("value", []):
                if target and target not in _recipient_addresses(raw):
                    continue
                messages.append(to_fetched_message(raw))
                if len(messages) >= mail_filter.max_results:
                    break
            # nextLink already carries the query string
            endpoint = data.get("@odata.nextLink")
            params = None

        logger.info(
            "mail_fetched",
            folder=self.folder,
            count=len(messages),
            pages=pages,
            lookback_days=mail_filter.lookback_days,
            target_address=mail_filter.target_address,
        )
        return messages

    async def list_new_messages(self, mail_filter: MailFilter) -> list[FetchedMessage]:
        """Fetch up to max_results messages matching the filter, newest first.

        Raises:
            GraphAPIError: If Graph cannot be reached or rejects the query
        """
        return await asyncio.to_thread(self._list_sync, mail_filter)

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def _send_sync(self, reply: OutgoingReply) -> SendResult:
        draft = self.client.post(f"/me/messages/{reply.in_reply_to}/createReply")
        draft_id = draft.get("id")
        if not draft_id:
            return SendResult(success=False, error="createReply returned no draft id")

        self.client.patch(
            f"/me/messages/{draft_id}",
            json={
                "subject": reply.subject,
                "body": {"contentType": "Text", "content": reply.body},
                "toRecipients": [{"emailAddress": {"address": reply.to}}],
            },
        )
        self.client.post(f"/me/messages/{draft_id}/send")
        return SendResult(success=True, message_id=draft_id)

    async def send(self, reply: OutgoingReply) -> SendResult:
        """Send a reply threaded under the original message.

        Graph failures are returned as an unsuccessful SendResult.
        """
        try:
            return await asyncio.to_thread(self._send_sync, reply)
        except ResolverError as e:
            logger.error("graph_send_failed", to=reply.to, error=str(e))
            return SendResult(success=False, error=str(e))

    async def check_connection(self) -> tuple[bool, str]:
        """Confirm sign-in works and report the mailbox address."""
        try:
            me = await asyncio.to_thread(
                self.client.get, "/me", {"$select": "mail,userPrincipalName"}
            )
        except ResolverError as e:
            return False, str(e)
        return True, f"Signed in as {me.get('mail') or me.get('userPrincipalName') or 'unknown'}"
