"""Best-effort JSON extraction from free-form model text.

The model is asked for JSON but may wrap it in a Markdown fence or surround
it with prose. Extraction tries a fenced block first, then the span from the
first ``{`` to the last ``}``. Anything else is a parse failure, reported as
None so callers can fall back without exception handling.
"""

from __future__ import annotations

import json
from typing import Any

import regex

REGEX_TIMEOUT = 1.0

FENCED_BLOCK_PATTERN = regex.compile(r"```(?:json|JSON)?[ \t]*\n?(.*?)```", regex.DOTALL)


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def extract_json(text: str | None) -> dict[str, Any] | None:
    """Extract a JSON object from model output.

    Returns:
        The parsed object, or None if no JSON object could be recovered
    """
    if not text or not text.strip():
        return None

    try:
        match = FENCED_BLOCK_PATTERN.search(text, timeout=REGEX_TIMEOUT)
    except TimeoutError:
        match = None
    if match:
        data = _loads_object(match.group(1).strip())
        if data is not None:
            return data

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return _loads_object(text[start : end + 1])
