"""Per-item triage: relevance, replyability and a suggested reply.

Each item gets exactly one generation call. Whatever goes wrong with that
call (timeout, API error, unparseable output, missing relevance field) the
item falls back to "not relevant, not replyable, original body" and the run
moves on to the next item.

Replyability has a deterministic guard: senders matching a no-reply pattern
are never replyable, whatever the model says.

Usage:
    from resolver.analysis.triage import TriageStage

    stage = TriageStage(generator, GenerationOptions(model="claude-haiku-4-5-20251001"))
    results = await stage.triage_all(items)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from resolver.analysis.prompts import build_triage_prompt
from resolver.core.errors import GenerationError
from resolver.core.logging import get_logger
from resolver.llm.parsing import extract_json
from resolver.models import NormalizedItem, TriageResult

if TYPE_CHECKING:
    from resolver.interfaces import GenerationOptions, TextGenerator

logger = get_logger(__name__)

# Case-insensitive substrings marking automated senders
NO_REPLY_PATTERNS = (
    "noreply",
    "no-reply",
    "no_reply",
    "donotreply",
    "do-not-reply",
    "notifications@",
    "notification@",
    "automated@",
    "system@",
    "mailer@",
    "mailer-daemon",
    "daemon@",
    "postmaster@",
)

TriageCallback = Callable[[int, int, TriageResult], None]


def is_no_reply_sender(sender: str | None) -> bool:
    """Whether the sender looks like an automated or no-reply address."""
    if not sender:
        return False
    lowered = sender.lower()
    return any(pattern in lowered for pattern in NO_REPLY_PATTERNS)


def _optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _confidence(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return min(1.0, max(0.0, float(value)))


def interpret_response(item: NormalizedItem, data: dict[str, Any] | None) -> TriageResult:
    """Turn parsed model output into a TriageResult, applying all guards.

    Args:
        item: The item that was classified
        data: Parsed JSON object, or None if parsing failed

    Returns:
        TriageResult; the safe fallback when data is unusable
    """
    if data is None:
        return TriageResult.fallback(item, "Response did not contain a JSON object")
    is_relevant = data.get("isRelevant")
    if not isinstance(is_relevant, bool):
        return TriageResult.fallback(item, "Response missing boolean 'isRelevant'")

    cleaned = _optional_text(data.get("cleanedMessage")) or item.body
    suggested_reply = _optional_text(data.get("suggestedReply"))
    is_replyable = data.get("isReplyable") is True

    if is_replyable and is_no_reply_sender(item.sender):
        logger.info("no_reply_override", item_id=item.id, sender=item.sender)
        is_replyable = False
    if is_replyable and suggested_reply is None:
        logger.warning("replyable_without_reply_text", item_id=item.id)
        is_replyable = False

    if not is_replyable:
        return TriageResult(
            source_item=item,
            is_relevant=is_relevant,
            cleaned_message=cleaned,
        )
    return TriageResult(
        source_item=item,
        is_relevant=is_relevant,
        is_replyable=True,
        cleaned_message=cleaned,
        suggested_reply=suggested_reply,
        reply_reason=_optional_text(data.get("replyReason")),
        reply_confidence=_confidence(data.get("replyConfidence")),
    )


class TriageStage:
    """Classifies items one at a time, in input order.

    Attributes:
        _generator: TextGenerator used for every call
        _options: Generation options (model, timeout)
    """

    def __init__(self, generator: TextGenerator, options: GenerationOptions) -> None:
        self._generator = generator
        self._options = options

    async def triage_item(self, item: NormalizedItem) -> TriageResult:
        """Classify one item with exactly one generation call. Never raises."""
        prompt = build_triage_prompt(item, automated_sender=is_no_reply_sender(item.sender))
        try:
            response = await self._generator.generate(prompt, self._options)
        except GenerationError as e:
            logger.warning("triage_generation_failed", item_id=item.id, error=str(e))
            return TriageResult.fallback(item, str(e))

        result = interpret_response(item, extract_json(response.text))
        if result.error:
            logger.warning(
                "triage_parse_failed",
                item_id=item.id,
                error=result.error,
                response_preview=response.text[:200],
            )
        return result

    async def triage_all(
        self,
        items: list[NormalizedItem],
        on_result: TriageCallback | None = None,
    ) -> list[TriageResult]:
        """Triage every item sequentially.

        Args:
            items: Items to classify
            on_result: Called as on_result(index, total, result) after each item

        Returns:
            One result per item, in input order
        """
        results: list[TriageResult] = []
        total = len(items)
        for index, item in enumerate(items, start=1):
            result = await self.triage_item(item)
            results.append(result)
            logger.debug(
                "item_triaged",
                item_id=item.id,
                position=index,
                total=total,
                is_relevant=result.is_relevant,
                is_replyable=result.is_replyable,
            )
            if on_result is not None:
                on_result(index, total, result)

        logger.info(
            "triage_complete",
            items=total,
            relevant=sum(1 for r in results if r.is_relevant),
            replyable=sum(1 for r in results if r.is_replyable),
            failed=sum(1 for r in results if r.error),
        )
        return results
