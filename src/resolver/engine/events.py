"""Progress events emitted by a pipeline run.

Every run emits exactly one STARTED event, then zero or more PROCESSED
events (one per finished stage, plus one per triaged item and per
consolidated chunk), then exactly one terminal COMPLETED or ERROR event.

A listener is any callable taking a PipelineEvent. Listener exceptions are
logged and never interrupt the run.

Usage:
    def show(event: PipelineEvent) -> None:
        print(event.kind.value, event.stage, event.detail)

    result = await pipeline.run(files=[path], listener=show)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from resolver.core.logging import get_logger

logger = get_logger(__name__)


class EventKind(str, Enum):
    STARTED = "started"
    PROCESSED = "processed"
    COMPLETED = "completed"
    ERROR = "error"


# Stage names carried by PROCESSED events, in run order
STAGE_ITEMS_LOADED = "items_loaded"
STAGE_ITEM_TRIAGED = "item_triaged"
STAGE_CHUNK_CONSOLIDATED = "chunk_consolidated"
STAGE_REPORT_READY = "report_ready"
STAGE_NOTIFICATIONS_SENT = "notifications_sent"
STAGE_APPROVAL_FINISHED = "approval_finished"
STAGE_REPLIES_DISPATCHED = "replies_dispatched"
STAGE_IDS_RECORDED = "ids_recorded"


@dataclass(frozen=True)
class PipelineEvent:
    """One progress notification.

    Attributes:
        kind: Lifecycle position of the event
        stage: Stage name for PROCESSED events, "run" otherwise
        detail: Stage-specific counters and values
    """

    kind: EventKind
    stage: str = "run"
    detail: dict[str, Any] = field(default_factory=dict)


ProgressListener = Callable[[PipelineEvent], None]


def emit(listener: ProgressListener | None, event: PipelineEvent) -> None:
    """Deliver an event, logging and ignoring listener failures."""
    if listener is None:
        return
    try:
        listener(event)
    except Exception as e:
        logger.warning(
            "progress_listener_failed",
            kind=event.kind.value,
            stage=event.stage,
            error=repr(e),
        )
