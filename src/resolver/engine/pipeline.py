"""Feedback pipeline: load, dedup, triage, consolidate, report, reply.

One call to FeedbackPipeline.run() is one run:
1. Generate a run_id and bind it to every log entry
2. Load processed ids from the dedup store
3. Load items (files, inline text, or the mailbox) and drop processed ones
4. Cap the batch at source.max_items_per_run (the rest wait for the next run)
5. Triage each item, then consolidate all results in chunks
6. Assemble the report and deliver it to every notifier
7. If replies are enabled, run the approval workflow and dispatch
8. Record the ids of every item processed in this run

Recoverable failures (a triage call, a chunk, a notifier, a single send)
are absorbed by the stage that owns them. Failures that leave nothing to
analyze (no input, unreadable files, mailbox unreachable) end the run with
an ERROR event and propagate to the caller.

Usage:
    from resolver.engine.pipeline import FeedbackPipeline

    pipeline = FeedbackPipeline(config=config, generator=generator, notifiers=[...])
    result = await pipeline.run(files=[Path("feedback.txt")])
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from resolver.analysis.consolidator import BatchConsolidator
from resolver.analysis.report import ReportAssembler
from resolver.analysis.triage import TriageStage
from resolver.core.errors import InputError
from resolver.core.logging import get_logger, set_run_id
from resolver.engine.events import (
    STAGE_APPROVAL_FINISHED,
    STAGE_CHUNK_CONSOLIDATED,
    STAGE_IDS_RECORDED,
    STAGE_ITEM_TRIAGED,
    STAGE_ITEMS_LOADED,
    STAGE_NOTIFICATIONS_SENT,
    STAGE_REPLIES_DISPATCHED,
    STAGE_REPORT_READY,
    EventKind,
    PipelineEvent,
    ProgressListener,
    emit,
)
from resolver.ingest.files import FileSource
from resolver.ingest.normalizer import ItemNormalizer, dedupe_items
from resolver.interfaces import GenerationOptions, MailFilter
from resolver.notify.channels import deliver_all
from resolver.replies.approval import ReplyApprovalWorkflow, candidates_from
from resolver.replies.dispatch import ReplyDispatcher

if TYPE_CHECKING:
    from resolver.config_schema import AppConfig
    from resolver.interfaces import MailFetcher, MailSender, ReportNotifier, TextGenerator
    from resolver.models import (
        ApprovalOutcome,
        ConsolidatedReport,
        DeliveryResult,
        DispatchSummary,
        NormalizedItem,
        TriageResult,
    )
    from resolver.replies.approval import ApprovalPrompter
    from resolver.store.processed import DedupStore, ProcessedIdSet

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class RunResult:
    """Everything one run produced.

    Attributes:
        run_id: Correlation id shared by all log entries of the run
        items_loaded: Items produced by the source, before dedup
        items_skipped: Items dropped because an earlier run processed them
        items_deferred: New items left for a later run by the per-run cap
        results: One triage result per processed item, in input order
        report: Final report (None only if the run failed)
        deliveries: One result per notifier
        approval: Approval outcome, when replies are enabled
        dispatch: Send totals, when replies were approved
        recorded_ids: Ids added to the dedup store
    """

    run_id: str
    duration_ms: int = 0
    items_loaded: int = 0
    items_skipped: int = 0
    items_deferred: int = 0
    results: list[TriageResult] = field(default_factory=list)
    report: ConsolidatedReport | None = None
    deliveries: list[DeliveryResult] = field(default_factory=list)
    approval: ApprovalOutcome | None = None
    dispatch: DispatchSummary | None = None
    recorded_ids: int = 0

    @property
    def items_processed(self) -> int:
        return len(self.results)


class FeedbackPipeline:
    """Runs the full analysis and reply flow for one batch of items.

    Collaborators are passed in; nothing is looked up globally, so one
    process can hold several pipelines (or test doubles) side by side.

    Attributes:
        config: Validated application configuration
        notifiers: Report channels, delivered concurrently
    """

    def __init__(
        self,
        config: AppConfig,
        generator: TextGenerator,
        notifiers: list[ReportNotifier] | None = None,
        dedup: DedupStore | None = None,
        fetcher: MailFetcher | None = None,
        sender: MailSender | None = None,
        prompter: ApprovalPrompter | None = None,
        normalizer: ItemNormalizer | None = None,
    ) -> None:
        replies = config.replies
        if replies.enabled and not replies.dry_run and sender is None:
            raise ValueError("Replies are enabled but no mail sender was provided")
        if replies.enabled and replies.policy == "interactive" and not replies.dry_run:
            if prompter is None:
                raise ValueError("The interactive reply policy needs a prompter")

        self.config = config
        self.notifiers = notifiers or []
        self._dedup = dedup if config.dedup.enabled else None
        self._fetcher = fetcher
        self._sender = sender
        self._prompter = prompter
        self._normalizer = normalizer or ItemNormalizer()
        self._file_source = FileSource(encoding=config.file.encoding, normalizer=self._normalizer)

        options = GenerationOptions(
            provider=config.ai.provider,
            model=config.ai.model,
            timeout_seconds=config.ai.timeout_seconds,
            max_tokens=config.ai.max_tokens,
        )
        self._triage = TriageStage(generator, options)
        self._consolidator = BatchConsolidator(
            generator, options, chunk_size=config.analysis.chunk_size
        )
        self._assembler = ReportAssembler(provider=config.ai.provider, model=config.ai.model)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        files: list[Path] | None = None,
        text: str | None = None,
        listener: ProgressListener | None = None,
    ) -> RunResult:
        """Execute one run.

        Explicit files or text take precedence over the configured source.

        Args:
            files: Input files to read
            text: Inline feedback text
            listener: Receives progress events

        Returns:
            RunResult with the report and per-stage outcomes

        Raises:
            InputError: If no input was given or no input file could be read
            GraphAPIError: If the mailbox could not be read
            AuthenticationError: If mail sign-in failed
        """
        run_id = str(uuid.uuid4())
        set_run_id(run_id)
        start_time = time.monotonic()
        result = RunResult(run_id=run_id)

        source = "arguments" if (files or text) else self.config.source.mode
        logger.info("pipeline_run_start", source=source, replies=self.config.replies.enabled)
        emit(listener, PipelineEvent(EventKind.STARTED, detail={"run_id": run_id, "source": source}))

        try:
            await self._execute(result, files, text, listener)
        except Exception as e:
            logger.error("pipeline_run_failed", error=str(e), error_type=type(e).__name__)
            emit(
                listener,
                PipelineEvent(
                    EventKind.ERROR,
                    detail={"run_id": run_id, "error": str(e), "error_type": type(e).__name__},
                ),
            )
            raise
        finally:
            result.duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "pipeline_run_complete",
                duration_ms=result.duration_ms,
                items_loaded=result.items_loaded,
                items_skipped=result.items_skipped,
                items_deferred=result.items_deferred,
                items_processed=result.items_processed,
                recorded_ids=result.recorded_ids,
            )
            set_run_id(None)

        emit(
            listener,
            PipelineEvent(
                EventKind.COMPLETED,
                detail={
                    "run_id": run_id,
                    "items_processed": result.items_processed,
                    "duration_ms": result.duration_ms,
                },
            ),
        )
        return result

    async def _execute(
        self,
        result: RunResult,
        files: list[Path] | None,
        text: str | None,
        listener: ProgressListener | None,
    ) -> None:
        processed = await self._dedup.load_processed_ids() if self._dedup else None

        # 1. Load and filter
        loaded = await self._load_items(files, text)
        result.items_loaded = len(loaded)
        fresh = loaded
        if self._dedup is not None and processed is not None:
            fresh = self._dedup.filter_new(loaded, processed)
        result.items_skipped = len(loaded) - len(fresh)

        cap = self.config.source.max_items_per_run
        items = fresh[:cap]
        result.items_deferred = len(fresh) - len(items)
        if result.items_deferred:
            logger.info("items_deferred_by_cap", deferred=result.items_deferred, cap=cap)
        emit(
            listener,
            PipelineEvent(
                EventKind.PROCESSED,
                STAGE_ITEMS_LOADED,
                {
                    "loaded": result.items_loaded,
                    "skipped": result.items_skipped,
                    "deferred": result.items_deferred,
                    "items": len(items),
                },
            ),
        )

        # 2. Triage
        def on_result(index: int, total: int, triaged: TriageResult) -> None:
            emit(
                listener,
                PipelineEvent(
                    EventKind.PROCESSED,
                    STAGE_ITEM_TRIAGED,
                    {
                        "position": index,
                        "total": total,
                        "item_id": triaged.source_item.id,
                        "is_relevant": triaged.is_relevant,
                        "is_replyable": triaged.is_replyable,
                        "failed": triaged.error is not None,
                    },
                ),
            )

        result.results = await self._triage.triage_all(items, on_result=on_result)

        # 3. Consolidate and assemble
        result.report = await self._build_report(result.results, listener)
        summary = result.report.summary
        emit(
            listener,
            PipelineEvent(
                EventKind.PROCESSED,
                STAGE_REPORT_READY,
                {
                    "total_items": summary.total_items,
                    "relevant_items": summary.relevant_items,
                    "general_items": summary.general_items,
                    "categories": len(summary.categories),
                },
            ),
        )

        # 4. Deliver
        result.deliveries = await deliver_all(self.notifiers, result.report)
        emit(
            listener,
            PipelineEvent(
                EventKind.PROCESSED,
                STAGE_NOTIFICATIONS_SENT,
                {
                    "channels": len(result.deliveries),
                    "failed": [d.channel for d in result.deliveries if not d.success],
                },
            ),
        )

        # 5. Replies
        if self.config.replies.enabled:
            await self._handle_replies(result, listener)

        # 6. Record processed ids
        if self._dedup is not None and processed is not None and items:
            updated = await self._dedup.record_processed([item.id for item in items], processed)
            result.recorded_ids = len(items)
            emit(
                listener,
                PipelineEvent(
                    EventKind.PROCESSED,
                    STAGE_IDS_RECORDED,
                    {"recorded": len(items), "stored": len(updated)},
                ),
            )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _load_items(self, files: list[Path] | None, text: str | None) -> list[NormalizedItem]:
        if files or text:
            items: list[NormalizedItem] = []
            if files:
                items.extend(self._file_source.read_many(files))
            if text and text.strip():
                items.extend(self._normalizer.normalize_blob(text, source_name="<text>"))
            return dedupe_items(items)

        if self.config.source.mode == "mail":
            if self._fetcher is None:
                raise InputError(
                    "source.mode is 'mail' but no mail transport is configured. "
                    "Set mail.client_id in config.yaml or pass --file/--text."
                )
            mail = self.config.mail
            messages = await self._fetcher.list_new_messages(
                MailFilter(
                    lookback_days=mail.lookback_days,
                    max_results=self.config.source.max_items_per_run,
                    target_address=mail.target_address,
                    unread_only=mail.unread_only,
                )
            )
            return self._normalizer.normalize_messages(messages)

        if self.config.file.paths:
            return self._file_source.read_many([Path(p) for p in self.config.file.paths])

        raise InputError(
            "No input to analyze. Pass --file or --text, or list input files "
            "under file.paths in config.yaml."
        )

    async def _build_report(
        self,
        results: list[TriageResult],
        listener: ProgressListener | None,
    ) -> ConsolidatedReport:
        if not results:
            logger.info("report_empty", reason="no_items")
            return self._assembler.empty_report()
        if not any(r.is_relevant for r in results):
            logger.info("report_empty", reason="no_relevant_items", items=len(results))
            return self._assembler.no_relevant_report(results)

        def on_chunk(number: int, total: int, succeeded: bool) -> None:
            emit(
                listener,
                PipelineEvent(
                    EventKind.PROCESSED,
                    STAGE_CHUNK_CONSOLIDATED,
                    {"chunk": number, "total_chunks": total, "succeeded": succeeded},
                ),
            )

        consolidation = await self._consolidator.consolidate(results, on_chunk=on_chunk)
        return self._assembler.assemble(results, consolidation)

    async def _handle_replies(self, result: RunResult, listener: ProgressListener | None) -> None:
        replies = self.config.replies
        workflow = ReplyApprovalWorkflow(
            policy=replies.policy,
            max_replies_per_run=replies.max_replies_per_run,
            confidence_threshold=replies.confidence_threshold,
            prompter=self._prompter,
            dry_run=replies.dry_run,
        )
        result.approval = workflow.run(candidates_from(result.results))
        emit(
            listener,
            PipelineEvent(
                EventKind.PROCESSED,
                STAGE_APPROVAL_FINISHED,
                {
                    "candidates": len(result.approval.candidates),
                    "approved": len(result.approval.approved),
                    "skipped": len(result.approval.skipped),
                    "pending": len(result.approval.pending),
                    "quit": result.approval.quit,
                    "dry_run": result.approval.dry_run,
                },
            ),
        )

        if not result.approval.approved or self._sender is None:
            return
        dispatcher = ReplyDispatcher(self._sender, send_delay_seconds=replies.send_delay_seconds)
        result.dispatch = await dispatcher.dispatch(result.approval.approved)
        emit(
            listener,
            PipelineEvent(
                EventKind.PROCESSED,
                STAGE_REPLIES_DISPATCHED,
                {
                    "attempted": result.dispatch.attempted,
                    "sent": result.dispatch.sent,
                    "failed": result.dispatch.failed,
                },
            ),
        )
