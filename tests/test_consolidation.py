"""Tests for chunked consolidation and report assembly."""

import math

import pytest
from conftest import CONSOLIDATION_MARKER, ScriptedGenerator, make_item, make_result

from resolver.analysis.consolidator import (
    CHUNK_SEPARATOR,
    BatchConsolidator,
    ConsolidationOutput,
    build_chunks,
)
from resolver.analysis.prompts import CATEGORIES, TAG_GENERAL, TAG_RELEVANT
from resolver.analysis.report import (
    NO_ITEMS_REASON,
    NO_RELEVANT_REASON,
    ReportAssembler,
    extract_summary,
)
from resolver.core.errors import GenerationError
from resolver.interfaces import GenerationOptions


def _results(count: int, relevant_every: int = 1) -> list:
    return [
        make_result(
            make_item(f"i{n}", subject=f"Subject {n}", body=f"Message number {n}"),
            is_relevant=(n % relevant_every == 0),
        )
        for n in range(count)
    ]


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------


class TestBuildChunks:
    @pytest.mark.parametrize(("count", "size"), [(1, 15), (15, 15), (16, 15), (31, 15), (7, 1)])
    def test_chunk_counts(self, count: int, size: int) -> None:
        chunks = build_chunks(_results(count), size)
        assert len(chunks) == math.ceil(count / size)
        assert all(len(chunk) <= size for chunk in chunks)
        assert sum(len(chunk) for chunk in chunks) == count

    def test_empty(self) -> None:
        assert build_chunks([], 15) == []

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            build_chunks(_results(3), 0)


class TestBatchConsolidator:
    async def test_one_call_per_chunk(self, options: GenerationOptions) -> None:
        generator = ScriptedGenerator(consolidation=lambda _: "### Technical Queries & Issues\n*   x")
        results = _results(31)
        output = await BatchConsolidator(generator, options, chunk_size=15).consolidate(results)

        prompts = generator.consolidation_calls
        assert len(prompts) == 3
        assert output.chunks == 3
        assert output.failed_chunks == 0
        for prompt, expected in zip(prompts, [15, 15, 1], strict=True):
            assert prompt.count(f"[{TAG_RELEVANT}] (From: ") == expected
        assert "batch 2 of 3" in prompts[1]

    async def test_single_chunk_has_no_batch_header(
        self, generator: ScriptedGenerator, options: GenerationOptions
    ) -> None:
        output = await BatchConsolidator(generator, options).consolidate(_results(3))
        assert output.chunks == 1
        assert "Batch 1 of" not in output.text
        assert CHUNK_SEPARATOR not in output.text

    async def test_chunks_joined_in_order(self, options: GenerationOptions) -> None:
        def consolidation(prompt: str) -> str:
            number = prompt.split("(batch ", 1)[1].split(" ", 1)[0]
            return f"### Section {number}\n*   item"

        generator = ScriptedGenerator(consolidation=consolidation)
        output = await BatchConsolidator(generator, options, chunk_size=2).consolidate(
            _results(5)
        )
        sections = output.text.split(CHUNK_SEPARATOR)
        assert len(sections) == 3
        assert sections[0].startswith("#### Batch 1 of 3")
        assert "### Section 1" in sections[0]
        assert "### Section 3" in sections[2]

    async def test_failed_chunk_gets_fallback_section(self, options: GenerationOptions) -> None:
        calls = {"n": 0}

        def consolidation(prompt: str) -> str | Exception:
            calls["n"] += 1
            if calls["n"] == 2:
                return GenerationError("timed out")
            return "### Technical Queries & Issues\n*   ok"

        progress: list[tuple[int, int, bool]] = []
        generator = ScriptedGenerator(consolidation=consolidation)
        output = await BatchConsolidator(generator, options, chunk_size=2).consolidate(
            _results(5), on_chunk=lambda n, t, ok: progress.append((n, t, ok))
        )
        assert output.failed_chunks == 1
        assert progress == [(1, 3, True), (2, 3, False), (3, 3, True)]
        fallback = output.text.split(CHUNK_SEPARATOR)[1]
        assert "### General Inquiries & Communications" in fallback
        assert "Message number 2" in fallback
        assert "Message number 3" in fallback
        assert "timed out" in fallback

    async def test_empty_response_counts_as_failure(self, options: GenerationOptions) -> None:
        generator = ScriptedGenerator(consolidation=lambda _: "   ")
        output = await BatchConsolidator(generator, options).consolidate(_results(2))
        assert output.failed_chunks == 1
        assert "Message number 0" in output.text

    async def test_prompt_tags_and_taxonomy(
        self, generator: ScriptedGenerator, options: GenerationOptions
    ) -> None:
        await BatchConsolidator(generator, options).consolidate(_results(4, relevant_every=2))
        prompt = generator.prompts[0]
        assert CONSOLIDATION_MARKER in prompt
        assert prompt.count(f"[{TAG_RELEVANT}]") == 2
        assert prompt.count(f"[{TAG_GENERAL}]") == 2
        for category in CATEGORIES:
            assert f"### {category}" in prompt

    def test_invalid_chunk_size(
        self, generator: ScriptedGenerator, options: GenerationOptions
    ) -> None:
        with pytest.raises(ValueError):
            BatchConsolidator(generator, options, chunk_size=0)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


REPORT_TEXT = """**Consolidated Feedback Analysis Report**

### Technical Queries & Issues
*   Login fails on Safari (From: a@x.com)
*   Export times out (From: c@z.com)

### Feature & Implementation Requests
*   Dark mode please (From: d@w.com)

### Technical Queries & Issues
*   Duplicate header from a second batch (From: e@v.com)
"""


class TestExtractSummary:
    def test_categories_deduplicated_in_order(self) -> None:
        categories, _ = extract_summary(REPORT_TEXT)
        assert categories == ["Technical Queries & Issues", "Feature & Implementation Requests"]

    def test_insights(self) -> None:
        _, insights = extract_summary(REPORT_TEXT)
        assert insights[0] == "4 feedback items identified across 2 categories"
        assert "Technical issues and integration requests present" in insights
        assert "Feature enhancement requests identified" in insights
        assert "Meeting and scheduling requests found" not in insights

    @pytest.mark.parametrize("text", [None, "", "plain prose with no structure"])
    def test_unstructured_text_never_raises(self, text: str | None) -> None:
        categories, insights = extract_summary(text)
        assert categories == []
        assert isinstance(insights, list)

    def test_batch_headers_are_not_categories(self) -> None:
        categories, _ = extract_summary("#### Batch 1 of 2\n\n### Meeting & Scheduling Requests\n* x")
        assert categories == ["Meeting & Scheduling Requests"]


class TestReportAssembler:
    def test_empty_report(self) -> None:
        report = ReportAssembler("anthropic", "test-model").empty_report()
        assert report.is_empty
        assert report.summary.total_items == 0
        assert report.summary.key_insights == [NO_ITEMS_REASON]
        assert NO_ITEMS_REASON in report.analysis_text
        assert report.analysis_text.startswith("# Feedback Analysis Report - ")

    def test_no_relevant_report_keeps_counts(self) -> None:
        results = [make_result(make_item(f"g{n}"), is_relevant=False) for n in range(3)]
        report = ReportAssembler("anthropic").no_relevant_report(results)
        assert report.summary.total_items == len(results)
        assert report.summary.relevant_items == 0
        assert report.summary.general_items == len(results)
        assert NO_RELEVANT_REASON in report.analysis_text

    def test_assemble_counts_and_metadata(self) -> None:
        results = _results(4, relevant_every=2)
        output = ConsolidationOutput(text=REPORT_TEXT, chunks=2, failed_chunks=1)
        report = ReportAssembler("anthropic", "test-model").assemble(results, output)

        summary = report.summary
        assert summary.total_items == 4
        assert summary.relevant_items == 2
        assert summary.general_items == 2
        assert summary.total_items == summary.relevant_items + summary.general_items
        assert summary.categories == [
            "Technical Queries & Issues",
            "Feature & Implementation Requests",
        ]
        assert any("1 of 2 batches" in insight for insight in summary.key_insights)
        assert report.metadata.model == "test-model"
        assert report.metadata.chunks == 2
        assert report.timestamp.endswith("+00:00")

    def test_to_dict_shape(self) -> None:
        report = ReportAssembler("anthropic", "m").empty_report()
        data = report.to_dict()
        assert set(data) == {"timestamp", "summary", "analysis_text", "metadata"}
        assert data["summary"]["total_items"] == 0
        assert data["metadata"]["provider"] == "anthropic"
