"""Collaborator interfaces used by the pipeline.

The pipeline depends only on these protocols. Production implementations
live in resolver.llm, resolver.mail, resolver.notify and resolver.store;
tests substitute fakes or mocks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from resolver.models import (
    ConsolidatedReport,
    DeliveryResult,
    FetchedMessage,
    OutgoingReply,
    SendResult,
)


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    """Per-call generation settings.

    Attributes:
        provider: Provider name (reported in report metadata)
        model: Model identifier, or None for the generator's default
        timeout_seconds: Budget for the whole call
        max_tokens: Response length limit
    """

    provider: str = "anthropic"
    model: str | None = None
    timeout_seconds: float = 30.0
    max_tokens: int = 4096


@dataclass(frozen=True, slots=True)
class GenerationResult:
    text: str


@dataclass(frozen=True, slots=True)
class MailFilter:
    """Which messages a fetch should return.

    ``max_results`` bounds the number of items, and therefore the tokens,
    processed in one run.
    """

    lookback_days: int = 10
    max_results: int = 20
    target_address: str | None = None
    unread_only: bool = True


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        """Return raw model text for a prompt.

        Raises:
            GenerationError: On timeout or service failure
        """
        ...


class MailFetcher(Protocol):
    async def list_new_messages(self, mail_filter: MailFilter) -> list[FetchedMessage]: ...


class MailSender(Protocol):
    async def send(self, reply: OutgoingReply) -> SendResult:
        """Send one reply. Failures are returned, not raised."""
        ...


class ReportNotifier(Protocol):
    name: str

    async def deliver(self, report: ConsolidatedReport) -> DeliveryResult: ...


class IdStoreBackend(Protocol):
    async def load(self) -> list[str]:
        """Return stored ids, oldest first.

        Raises:
            StoreError: If the backing store cannot be read
        """
        ...

    async def save(self, ids: list[str]) -> None:
        """Replace stored ids.

        Raises:
            StoreError: If the backing store cannot be written
        """
        ...
