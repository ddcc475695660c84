"""Outlook mailbox access through Microsoft Graph.

Usage:
    from resolver.mail import GraphAuth, GraphClient, GraphMailTransport

    transport = GraphMailTransport(GraphClient(GraphAuth(...)), folder="inbox")
    messages = await transport.list_new_messages(MailFilter(lookback_days=10))
"""

from resolver.mail.auth import GraphAuth
from resolver.mail.client import GraphClient
from resolver.mail.transport import GraphMailTransport

__all__ = ["GraphAuth", "GraphClient", "GraphMailTransport"]
