"""Pytest fixtures and configuration for feedback resolver tests.

Provides common fixtures for configuration, sample items, and a scripted
text generator that stands in for the model.
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from resolver.config import build_config
from resolver.config_schema import AppConfig
from resolver.core.errors import GenerationError
from resolver.interfaces import GenerationOptions, GenerationResult
from resolver.models import NormalizedItem, TriageResult

TRIAGE_MARKER = "Analyze the message below"
CONSOLIDATION_MARKER = "feedback messages (batch"

EXAMPLE_BLOB = (
    "From: a@x.com\nSubject: Bug\n\nLogin fails.\n---\n"
    "From: b@y.com\nSubject: Newsletter\n\nBuy now!"
)

Responder = Callable[[str], "str | Exception"]


def triage_json(
    is_relevant: bool = True,
    is_replyable: bool = False,
    cleaned: str | None = None,
    reply: str | None = None,
    confidence: float | None = None,
    reason: str | None = None,
) -> str:
    """Serialize a triage response the way the model would return it."""
    return json.dumps(
        {
            "isRelevant": is_relevant,
            "isReplyable": is_replyable,
            "cleanedMessage": cleaned,
            "suggestedReply": reply,
            "replyConfidence": confidence,
            "replyReason": reason,
        }
    )


def default_triage(prompt: str) -> str:
    """Relevant and replyable unless the message looks like marketing."""
    if "Buy now" in prompt or "Newsletter" in prompt:
        return triage_json(is_relevant=False)
    return triage_json(
        is_relevant=True,
        is_replyable=True,
        reply="Thanks, we are looking into it.",
        confidence=0.9,
        reason="Customer reported a problem",
    )


def default_consolidation(prompt: str) -> str:
    return (
        "**Consolidated Feedback Analysis Report**\n\n"
        "### Technical Queries & Issues\n"
        "*   Login fails. (From: a@x.com)\n\n"
        "### General Inquiries & Communications\n"
        "*   Promotional newsletter. (From: b@y.com)"
    )


class ScriptedGenerator:
    """TextGenerator double that answers triage and consolidation prompts.

    Responders receive the prompt and return text, or an exception to raise.
    """

    def __init__(
        self,
        triage: Responder = default_triage,
        consolidation: Responder = default_consolidation,
    ) -> None:
        self.triage = triage
        self.consolidation = consolidation
        self.prompts: list[str] = []

    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        self.prompts.append(prompt)
        responder = self.triage if prompt.startswith(TRIAGE_MARKER) else self.consolidation
        answer = responder(prompt)
        if isinstance(answer, Exception):
            raise answer
        return GenerationResult(text=answer)

    @property
    def triage_calls(self) -> list[str]:
        return [p for p in self.prompts if p.startswith(TRIAGE_MARKER)]

    @property
    def consolidation_calls(self) -> list[str]:
        return [p for p in self.prompts if CONSOLIDATION_MARKER in p]


def make_item(
    item_id: str = "item-1",
    sender: str = "Jane Doe <jane@example.com>",
    subject: str = "Login problem",
    body: str = "I cannot log in since the last update.",
) -> NormalizedItem:
    return NormalizedItem(
        id=item_id,
        sender=sender,
        subject=subject,
        date="2026-01-05T10:00:00+00:00",
        body=body,
        thread_id=f"conv-{item_id}",
    )


def make_result(item: NormalizedItem | None = None, **kwargs: Any) -> TriageResult:
    item = item or make_item()
    kwargs.setdefault("cleaned_message", item.body)
    return TriageResult(source_item=item, **kwargs)


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def failing_generator() -> ScriptedGenerator:
    """Generator whose every call fails."""
    error = GenerationError("service unavailable")
    return ScriptedGenerator(triage=lambda _: error, consolidation=lambda _: error)


@pytest.fixture
def options() -> GenerationOptions:
    return GenerationOptions(model="test-model", timeout_seconds=5.0)


@pytest.fixture
def sample_config_dict(tmp_path: Path) -> dict[str, Any]:
    """Return a minimal valid config as a dictionary, writing under tmp_path."""
    return {
        "schema_version": 1,
        "source": {"mode": "file", "max_items_per_run": 20},
        "ai": {"model": "test-model", "api_key": "sk-test"},
        "analysis": {"chunk_size": 15},
        "dedup": {"path": str(tmp_path / "processed_items.json")},
        "notifications": {
            "console": False,
            "file": {"enabled": False, "output_dir": str(tmp_path / "reports")},
        },
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return build_config(sample_config_dict)


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> str:
    """Return a minimal valid config.yaml content."""
    return f"""
schema_version: 1

source:
  mode: "file"

ai:
  model: "test-model"

dedup:
  path: "{tmp_path / 'processed_items.json'}"

notifications:
  console: false
  file:
    enabled: false
"""


@pytest.fixture
def config_file(tmp_path: Path, sample_config_yaml: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(sample_config_yaml)
    return path
