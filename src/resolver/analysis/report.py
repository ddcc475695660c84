"""Assemble the final report and extract summary metadata.

Summary extraction reads free-form model output, so it is best-effort: it
never raises, and text without the expected markers simply produces empty
categories and fewer insights.

Usage:
    from resolver.analysis.report import ReportAssembler

    assembler = ReportAssembler(provider="anthropic", model="claude-haiku-4-5-20251001")
    report = assembler.assemble(triage_results, consolidation_output)
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import regex

from resolver.core.logging import get_logger
from resolver.models import ConsolidatedReport, ReportMetadata, ReportSummary

if TYPE_CHECKING:
    from resolver.analysis.consolidator import ConsolidationOutput
    from resolver.models import TriageResult

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0

NO_ITEMS_REASON = "No items to analyze."
NO_RELEVANT_REASON = "No relevant feedback found."

CATEGORY_HEADER_PATTERN = regex.compile(r"^###[ \t]+(.+?)[ \t]*$", regex.MULTILINE)
BULLET_PATTERN = regex.compile(r"^[ \t]*[*\-•][ \t]+\S", regex.MULTILINE)

# Keyword found in the text -> insight reported
KEYWORD_INSIGHTS = (
    ("technical", "Technical issues and integration requests present"),
    ("feature", "Feature enhancement requests identified"),
    ("billing", "Service and billing changes requested"),
    ("meeting", "Meeting and scheduling requests found"),
)


def _utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


def extract_summary(text: str | None) -> tuple[list[str], list[str]]:
    """Pull category headers and heuristic insights out of report text.

    Returns:
        Tuple of (categories, key_insights); both empty for unusable text
    """
    if not text or not isinstance(text, str):
        return [], []

    try:
        headers = CATEGORY_HEADER_PATTERN.findall(text, timeout=REGEX_TIMEOUT)
        bullet_count = len(BULLET_PATTERN.findall(text, timeout=REGEX_TIMEOUT))
    except TimeoutError:
        logger.warning("summary_extraction_timeout", text_length=len(text))
        return [], []

    categories: list[str] = []
    for header in headers:
        name = header.strip().strip("*").strip()
        if name and name not in categories:
            categories.append(name)

    insights: list[str] = []
    if bullet_count:
        insights.append(
            f"{bullet_count} feedback items identified across {len(categories)} categories"
        )
    lowered = " ".join(categories).lower() if categories else text.lower()
    for keyword, insight in KEYWORD_INSIGHTS:
        if keyword in lowered:
            insights.append(insight)
    return categories, insights


class ReportAssembler:
    """Builds ConsolidatedReport values with provider metadata."""

    def __init__(self, provider: str, model: str | None = None) -> None:
        self.provider = provider
        self.model = model

    def _metadata(self, chunks: int = 0, failed_chunks: int = 0) -> ReportMetadata:
        return ReportMetadata(
            provider=self.provider,
            model=self.model,
            chunks=chunks,
            failed_chunks=failed_chunks,
        )

    def empty_report(self, reason: str = NO_ITEMS_REASON) -> ConsolidatedReport:
        """Report for a run with nothing to analyze. No generation call is involved."""
        timestamp = _utc_timestamp()
        return ConsolidatedReport(
            timestamp=timestamp,
            summary=ReportSummary(key_insights=[reason]),
            analysis_text=f"# Feedback Analysis Report - {timestamp[:10]}\n\n{reason}",
            metadata=self._metadata(),
        )

    def no_relevant_report(self, results: list[TriageResult]) -> ConsolidatedReport:
        """Report for a run where every item was judged not relevant."""
        timestamp = _utc_timestamp()
        lines = [
            f"# Feedback Analysis Report - {timestamp[:10]}",
            "",
            NO_RELEVANT_REASON,
            "",
            f"{len(results)} items were reviewed and classified as general communications:",
            "",
        ]
        lines.extend(
            f"*   {r.source_item.subject} (From: {r.source_item.sender})" for r in results
        )
        return ConsolidatedReport(
            timestamp=timestamp,
            summary=ReportSummary(
                total_items=len(results),
                relevant_items=0,
                general_items=len(results),
                key_insights=[NO_RELEVANT_REASON],
            ),
            analysis_text="\n".join(lines),
            metadata=self._metadata(),
        )

    def assemble(
        self,
        results: list[TriageResult],
        consolidation: ConsolidationOutput,
    ) -> ConsolidatedReport:
        """Build the report for a run that went through consolidation."""
        relevant = sum(1 for r in results if r.is_relevant)
        categories, insights = extract_summary(consolidation.text)
        if consolidation.failed_chunks:
            insights.append(
                f"{consolidation.failed_chunks} of {consolidation.chunks} batches could not "
                "be categorized automatically; their messages are listed unprocessed"
            )

        return ConsolidatedReport(
            timestamp=_utc_timestamp(),
            summary=ReportSummary(
                total_items=len(results),
                relevant_items=relevant,
                general_items=len(results) - relevant,
                categories=categories,
                key_insights=insights,
            ),
            analysis_text=consolidation.text,
            metadata=self._metadata(consolidation.chunks, consolidation.failed_chunks),
        )
