"""Two-stage feedback analysis.

This package provides:
- Per-item triage (relevance, replyability, cleaned message, suggested reply)
- Chunked consolidation into a categorized Markdown report
- Report assembly with best-effort summary extraction
"""

from resolver.analysis.consolidator import BatchConsolidator, ConsolidationOutput
from resolver.analysis.report import ReportAssembler
from resolver.analysis.triage import TriageStage, is_no_reply_sender

__all__ = [
    "BatchConsolidator",
    "ConsolidationOutput",
    "ReportAssembler",
    "TriageStage",
    "is_no_reply_sender",
]
