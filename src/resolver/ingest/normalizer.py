"""Turn raw feedback into NormalizedItem records.

Two kinds of input are supported:

1. A free-text blob (a file or pasted text) that may hold several messages.
   The blob is split with an ordered list of strategies; the first one that
   yields a non-trivial split wins:

   a. explicit separators: a line of dashes, a line of equals signs, or the
      start of a ``From:`` line (fragments over 20 characters are kept)
   b. blank-line paragraphs (fragments over 100 characters, used only when
      more than one survives)
   c. bullet or numbered list markers (fragments over 30 characters)
   d. the whole blob as one item

2. Messages already fetched from a mail transport, which only need their
   bodies cleaned.

Usage:
    from resolver.ingest.normalizer import ItemNormalizer

    items = ItemNormalizer().normalize_blob(text, source_name="feedback.txt")
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import UTC, datetime

import regex

from resolver.core.logging import get_logger
from resolver.ingest.cleaning import BodyCleaner, normalize_whitespace, safe_sub
from resolver.models import FetchedMessage, NormalizedItem

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0

# Minimum fragment length (exclusive) per splitting strategy
SEPARATOR_MIN_LENGTH = 20
PARAGRAPH_MIN_LENGTH = 100
LIST_MIN_LENGTH = 30

DEFAULT_SENDER = "File Input"

SEPARATOR_PATTERNS = [
    regex.compile(r"^[ \t]*-{3,}[ \t]*$", regex.MULTILINE),
    regex.compile(r"^[ \t]*={3,}[ \t]*$", regex.MULTILINE),
    regex.compile(r"(?=^From:[ \t]*\S)", regex.MULTILINE | regex.V1),
]
PARAGRAPH_PATTERN = regex.compile(r"\n[ \t]*\n")
LIST_MARKER_PATTERN = regex.compile(r"(?:\n|^)[ \t]*(?:\*|-|\d+\.)[ \t]+")

SENDER_PATTERNS = [
    regex.compile(rf"^[ \t]*{label}:[ \t]*(\S.*)$", regex.MULTILINE | regex.IGNORECASE)
    for label in ("From", "Sender", "Name", "Email")
]
SUBJECT_PATTERNS = [
    regex.compile(rf"^[ \t]*{label}:[ \t]*(\S.*)$", regex.MULTILINE | regex.IGNORECASE)
    for label in ("Subject", "Title", "Re", "Topic")
]
DATE_PATTERN = regex.compile(r"^[ \t]*Date:[ \t]*(\S.*)$", regex.MULTILINE | regex.IGNORECASE)
HEADER_LABELS = ("From", "Sender", "Subject", "Title", "Date", "To", "Cc", "Sent", "Name", "Email")

# Only the first line per label is a header; later ones belong to the body
HEADER_LINE_PATTERNS = [
    regex.compile(rf"^[ \t]*{label}:.*$\n?", regex.MULTILINE | regex.IGNORECASE)
    for label in HEADER_LABELS
]


def _split(pattern: regex.Pattern, text: str) -> list[str]:
    try:
        return pattern.split(text, timeout=REGEX_TIMEOUT)
    except TimeoutError:
        logger.warning("regex_timeout", pattern=pattern.pattern[:50])
        return [text]


def _search(patterns: Iterable[regex.Pattern], text: str) -> str | None:
    for pattern in patterns:
        try:
            match = pattern.search(text, timeout=REGEX_TIMEOUT)
        except TimeoutError:
            logger.warning("regex_timeout", pattern=pattern.pattern[:50])
            continue
        if match:
            return match.group(1).strip()
    return None


def strip_header_lines(fragment: str) -> str:
    """Remove the first line for each header label."""
    for pattern in HEADER_LINE_PATTERNS:
        fragment = safe_sub(pattern, "", fragment, count=1)
    return fragment


def _keep_longer_than(parts: list[str], min_length: int) -> list[str]:
    return [part.strip() for part in parts if len(part.strip()) > min_length]


def split_blob(text: str) -> list[str]:
    """Split a text blob into message fragments.

    Returns an empty list for empty or whitespace-only input.
    """
    if not text or not text.strip():
        return []

    text = text.replace("\r\n", "\n").replace("\r", "\n")

    for pattern in SEPARATOR_PATTERNS:
        parts = _split(pattern, text)
        if len(parts) > 1:
            kept = _keep_longer_than(parts, SEPARATOR_MIN_LENGTH)
            if kept:
                return kept

    kept = _keep_longer_than(_split(PARAGRAPH_PATTERN, text), PARAGRAPH_MIN_LENGTH)
    if len(kept) > 1:
        return kept

    parts = _split(LIST_MARKER_PATTERN, text)
    if len(parts) > 1:
        kept = _keep_longer_than(parts, LIST_MIN_LENGTH)
        if kept:
            return kept

    return [text.strip()]


def stable_item_id(sender: str, subject: str, body: str, prefix: str = "file") -> str:
    """Content hash id, stable across runs for identical input."""
    digest = hashlib.sha256(f"{sender}\n{subject}\n{body}".encode()).hexdigest()
    return f"{prefix}-{digest[:12]}"


class ItemNormalizer:
    """Builds NormalizedItem records from blobs and fetched messages.

    Attributes:
        cleaner: Body cleaner applied to fetched mail
    """

    def __init__(self, cleaner: BodyCleaner | None = None):
        self.cleaner = cleaner or BodyCleaner()

    def parse_fragment(self, fragment: str, index: int, ingested_at: str) -> NormalizedItem | None:
        """Extract headers and a cleaned body from one fragment.

        Args:
            fragment: One message worth of text
            index: 1-based position, used in the fallback subject
            ingested_at: ISO timestamp used when no Date: header is present

        Returns:
            The item, or None if nothing is left after header removal
        """
        sender = _search(SENDER_PATTERNS, fragment) or DEFAULT_SENDER
        date = _search([DATE_PATTERN], fragment) or ingested_at
        body = normalize_whitespace(strip_header_lines(fragment))
        if not body:
            return None

        subject = _search(SUBJECT_PATTERNS, fragment)
        if subject is None:
            first_line = body.split("\n", 1)[0].strip()
            subject = first_line if 10 < len(first_line) < 100 else f"Feedback Item {index}"

        item_id = stable_item_id(sender, subject, body)
        return NormalizedItem(
            id=item_id,
            sender=sender,
            subject=subject,
            date=date,
            body=body,
            thread_id=item_id,
        )

    def normalize_blob(self, text: str, source_name: str = "<text>") -> list[NormalizedItem]:
        """Split a blob and normalize each fragment.

        Duplicate fragments (same id) within the blob are dropped.
        """
        fragments = split_blob(text)
        ingested_at = datetime.now(UTC).isoformat()

        items: list[NormalizedItem] = []
        for index, fragment in enumerate(fragments, start=1):
            item = self.parse_fragment(fragment, index, ingested_at)
            if item is None:
                logger.debug("empty_fragment_dropped", source=source_name, index=index)
                continue
            items.append(item)

        items = dedupe_items(items)
        logger.info(
            "blob_normalized",
            source=source_name,
            fragments=len(fragments),
            items=len(items),
        )
        return items

    def normalize_messages(self, messages: Iterable[FetchedMessage]) -> list[NormalizedItem]:
        """Clean fetched messages; drop those without an id or a body."""
        items: list[NormalizedItem] = []
        for message in messages:
            if not message.id:
                logger.debug("message_without_id_dropped", subject=message.subject)
                continue
            body = self.cleaner.clean(message.body, is_html=message.is_html)
            if not body:
                logger.debug("empty_message_dropped", message_id=message.id)
                continue
            items.append(
                NormalizedItem(
                    id=message.id,
                    sender=message.sender or "Unknown",
                    subject=message.subject or "(no subject)",
                    date=message.date,
                    body=body,
                    thread_id=message.thread_id or message.id,
                )
            )
        return dedupe_items(items)


def dedupe_items(items: Iterable[NormalizedItem]) -> list[NormalizedItem]:
    """Keep the first item for each id, preserving order."""
    seen: set[str] = set()
    unique: list[NormalizedItem] = []
    for item in items:
        if item.id in seen:
            logger.debug("duplicate_item_dropped", item_id=item.id)
            continue
        seen.add(item.id)
        unique.append(item)
    return unique
