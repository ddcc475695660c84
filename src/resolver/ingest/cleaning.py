"""Body cleaning pipeline for fetched mail.

Removes the noise around what the sender actually wrote so triage sees the
message itself: HTML markup, quoted reply history, forwarded headers, and
signature blocks.

All regex operations use the `regex` library with a timeout so that hostile
message content cannot stall a run.

Usage:
    from resolver.ingest.cleaning import BodyCleaner

    cleaner = BodyCleaner()
    text = cleaner.clean(message.body, is_html=message.is_html)
"""

from __future__ import annotations

import html

import regex

from resolver.core.logging import get_logger

logger = get_logger(__name__)

# Regex timeout in seconds (all substitutions MUST use this)
REGEX_TIMEOUT = 1.0

# Bodies longer than this are cut before triage
DEFAULT_MAX_LENGTH = 20_000


# =============================================================================
# Compiled Regex Patterns
# =============================================================================

HTML_BLOCK_PATTERN = regex.compile(
    r"<(script|style)[^>]*>.*?</\1>",
    regex.IGNORECASE | regex.DOTALL,
)
HTML_BREAK_PATTERN = regex.compile(r"<\s*(br|/p|/div|/li|/tr)\s*/?>", regex.IGNORECASE)
HTML_TAG_PATTERN = regex.compile(r"<[^>]+>")

QUOTED_HISTORY_PATTERNS = [
    # "On Mon, 5 Jan 2026, Jane <jane@x.com> wrote:" and everything quoted below it
    regex.compile(r"^On .{1,300}? wrote:\s*$.*", regex.MULTILINE | regex.DOTALL),
    regex.compile(
        r"^-{3,}\s*(?:Original|Forwarded) Message\s*-{3,}.*",
        regex.MULTILINE | regex.IGNORECASE | regex.DOTALL,
    ),
    # Outlook-style "From: ... Sent: ..." header introducing the previous message
    regex.compile(r"^From:[^\n]+\nSent:[^\n]+\n.*", regex.MULTILINE | regex.DOTALL),
    regex.compile(r"^>.*$\n?", regex.MULTILINE),
]

SIGNATURE_PATTERNS = [
    regex.compile(r"^--\s*\n.*", regex.MULTILINE | regex.DOTALL),
    regex.compile(r"^_{5,}.*", regex.MULTILINE | regex.DOTALL),
    regex.compile(
        r"^Sent from my (iPhone|iPad|Android|Galaxy|Pixel|mobile).*$",
        regex.MULTILINE | regex.IGNORECASE,
    ),
    regex.compile(r"^Get Outlook for (iOS|Android).*$", regex.MULTILINE | regex.IGNORECASE),
]

EXCESSIVE_NEWLINES = regex.compile(r"\n{3,}")
EXCESSIVE_SPACES = regex.compile(r"[ \t]+")
TRAILING_SPACES = regex.compile(r"[ \t]+$", regex.MULTILINE)


def safe_sub(pattern: regex.Pattern, repl: str, text: str, count: int = 0) -> str:
    """Perform a regex substitution with timeout.

    On timeout the text is returned unchanged and a warning is logged.
    """
    try:
        return pattern.sub(repl, text, count=count, timeout=REGEX_TIMEOUT)
    except TimeoutError:
        logger.warning("regex_timeout", pattern=pattern.pattern[:50])
        return text


def normalize_whitespace(text: str) -> str:
    """Normalize line endings, collapse blank-line runs and inline whitespace."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = safe_sub(EXCESSIVE_SPACES, " ", text)
    text = safe_sub(TRAILING_SPACES, "", text)
    text = safe_sub(EXCESSIVE_NEWLINES, "\n\n", text)
    return text.strip()


class BodyCleaner:
    """Cleans fetched message bodies before triage.

    Steps, in order: strip HTML (when the body is HTML), drop quoted reply
    history, drop signature blocks, normalize whitespace, truncate.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH):
        self.max_length = max_length

    def clean(self, text: str | None, is_html: bool = False) -> str:
        if not text:
            return ""

        current = text.replace("\r\n", "\n")
        if is_html:
            current = self._strip_html(current)

        for pattern in QUOTED_HISTORY_PATTERNS:
            current = safe_sub(pattern, "", current)
        for pattern in SIGNATURE_PATTERNS:
            current = safe_sub(pattern, "", current)

        current = normalize_whitespace(current)

        if len(current) > self.max_length:
            logger.debug("body_truncated", original_length=len(current), max_length=self.max_length)
            current = current[: self.max_length]
        return current

    def _strip_html(self, text: str) -> str:
        text = safe_sub(HTML_BLOCK_PATTERN, "", text)
        text = safe_sub(HTML_BREAK_PATTERN, "\n", text)
        text = safe_sub(HTML_TAG_PATTERN, " ", text)
        return html.unescape(text)


def clean_body(text: str | None, is_html: bool = False) -> str:
    """Convenience function to clean a body with default settings."""
    return BodyCleaner().clean(text, is_html=is_html)
