"""Run orchestration and progress events."""

from resolver.engine.events import EventKind, PipelineEvent, ProgressListener
from resolver.engine.pipeline import FeedbackPipeline, RunResult

__all__ = ["EventKind", "FeedbackPipeline", "PipelineEvent", "ProgressListener", "RunResult"]
