"""Chunked consolidation of triage results into one categorized report.

Large item lists are split into fixed-size chunks before any generation call,
because very long prompts fail unpredictably. Each chunk gets one call; the
chunk outputs are concatenated in order. A chunk whose call fails is replaced
by a fallback section that lists its messages verbatim, so no message is
dropped from the report.

Usage:
    from resolver.analysis.consolidator import BatchConsolidator

    consolidator = BatchConsolidator(generator, options, chunk_size=15)
    output = await consolidator.consolidate(triage_results)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from resolver.analysis.prompts import CATEGORY_GENERAL, build_consolidation_prompt
from resolver.core.errors import GenerationError
from resolver.core.logging import get_logger

if TYPE_CHECKING:
    from resolver.interfaces import GenerationOptions, TextGenerator
    from resolver.models import TriageResult

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 15

CHUNK_SEPARATOR = "\n\n---\n\n"

ChunkCallback = Callable[[int, int, bool], None]


@dataclass
class ConsolidationOutput:
    """Concatenated consolidation text plus chunk accounting."""

    text: str
    chunks: int
    failed_chunks: int = 0


def build_chunks(results: list[TriageResult], chunk_size: int) -> list[list[TriageResult]]:
    """Split results into consecutive chunks of at most chunk_size."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
    return [results[i : i + chunk_size] for i in range(0, len(results), chunk_size)]


def fallback_section(chunk: list[TriageResult], error: str) -> str:
    """Markdown section listing a failed chunk's messages unprocessed."""
    lines = [
        f"### {CATEGORY_GENERAL}",
        f"_Automatic categorization failed for these {len(chunk)} messages ({error}). "
        "Original content follows._",
        "",
    ]
    for result in chunk:
        item = result.source_item
        body = " ".join((result.cleaned_message or item.body).split())
        lines.append(f"*   {item.subject}: {body} (From: {item.sender})")
    return "\n".join(lines)


class BatchConsolidator:
    """Runs one consolidation call per chunk, sequentially.

    Attributes:
        chunk_size: Maximum triage results per generation call
    """

    def __init__(
        self,
        generator: TextGenerator,
        options: GenerationOptions,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        self._generator = generator
        self._options = options
        self.chunk_size = chunk_size

    async def consolidate(
        self,
        results: list[TriageResult],
        on_chunk: ChunkCallback | None = None,
    ) -> ConsolidationOutput:
        """Categorize all results, chunk by chunk.

        Args:
            results: Every triage result of the run, relevant or not
            on_chunk: Called as on_chunk(chunk_number, total_chunks, succeeded)

        Returns:
            ConsolidationOutput; text is empty when results is empty
        """
        chunks = build_chunks(results, self.chunk_size)
        total = len(chunks)
        sections: list[str] = []
        failed = 0

        for number, chunk in enumerate(chunks, start=1):
            prompt = build_consolidation_prompt(chunk, number, total)
            succeeded = True
            try:
                response = await self._generator.generate(prompt, self._options)
                text = response.text.strip()
                if not text:
                    raise GenerationError("empty response")
            except GenerationError as e:
                succeeded = False
                failed += 1
                logger.warning(
                    "chunk_consolidation_failed",
                    chunk=number,
                    total_chunks=total,
                    items=len(chunk),
                    error=str(e),
                )
                text = fallback_section(chunk, str(e))

            if total > 1:
                text = f"#### Batch {number} of {total}\n\n{text}"
            sections.append(text)
            if on_chunk is not None:
                on_chunk(number, total, succeeded)

        logger.info(
            "consolidation_complete",
            items=len(results),
            chunks=total,
            failed_chunks=failed,
        )
        return ConsolidationOutput(
            text=CHUNK_SEPARATOR.join(sections),
            chunks=total,
            failed_chunks=failed,
        )
