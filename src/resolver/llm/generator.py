"""Anthropic-backed text generator.

Error handling strategy:
- Transient errors (429, 5xx, network): handled by the Anthropic SDK (max_retries=3)
- Whatever remains, plus the caller's timeout, surfaces as GenerationError

Usage:
    from resolver.llm.generator import AnthropicGenerator

    generator = AnthropicGenerator(anthropic.AsyncAnthropic(max_retries=3))
    result = await generator.generate(prompt, GenerationOptions(model="claude-haiku-4-5-20251001"))
"""

from __future__ import annotations

import asyncio
import time

import anthropic

from resolver.core.errors import GenerationError
from resolver.core.logging import get_logger
from resolver.interfaces import GenerationOptions, GenerationResult

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5-20251001"

SYSTEM_PROMPT = (
    "You are an assistant that analyzes incoming customer and partner feedback. "
    "Follow the requested output format exactly."
)


class AnthropicGenerator:
    """TextGenerator backed by the Anthropic Messages API.

    Attributes:
        _client: Async Anthropic client (configured with max_retries=3)
        default_model: Model used when options.model is None
    """

    def __init__(
        self,
        anthropic_client: anthropic.AsyncAnthropic,
        default_model: str = DEFAULT_MODEL,
    ) -> None:
        self._client = anthropic_client
        self.default_model = default_model

    @classmethod
    def from_api_key(cls, api_key: str, default_model: str = DEFAULT_MODEL) -> AnthropicGenerator:
        return cls(anthropic.AsyncAnthropic(api_key=api_key, max_retries=3), default_model)

    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        """Send one prompt and return the concatenated text blocks.

        Raises:
            GenerationError: On timeout or any API failure left after SDK retries
        """
        model = options.model or self.default_model
        start_time = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=model,
                    max_tokens=options.max_tokens,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=options.timeout_seconds,
            )
        except TimeoutError as e:
            logger.warning(
                "generation_timeout",
                model=model,
                timeout_seconds=options.timeout_seconds,
            )
            raise GenerationError(
                f"Generation timed out after {options.timeout_seconds:g}s (model {model})",
                retryable=True,
            ) from e
        except anthropic.RateLimitError as e:
            logger.error("generation_rate_limited", model=model, error=str(e))
            raise GenerationError(f"Rate limited after SDK retries: {e}", retryable=True) from e
        except anthropic.APIConnectionError as e:
            logger.error("generation_connection_error", model=model, error=str(e))
            raise GenerationError(
                f"API connection error after SDK retries: {e}", retryable=True
            ) from e
        except anthropic.APIStatusError as e:
            logger.error(
                "generation_api_error",
                model=model,
                status_code=e.status_code,
                error=str(e),
            )
            raise GenerationError(f"API status error {e.status_code}: {e.message}") from e

        text = "".join(block.text for block in response.content if block.type == "text")
        logger.debug(
            "generation_complete",
            model=model,
            duration_ms=int((time.monotonic() - start_time) * 1000),
            output_chars=len(text),
            stop_reason=response.stop_reason,
        )
        return GenerationResult(text=text)

    async def check_connection(self, options: GenerationOptions) -> tuple[bool, str]:
        """Send a trivial prompt to confirm credentials and model access.

        Returns:
            Tuple of (ok, message)
        """
        try:
            result = await self.generate(
                "Reply with the single word OK.",
                GenerationOptions(
                    provider=options.provider,
                    model=options.model,
                    timeout_seconds=options.timeout_seconds,
                    max_tokens=16,
                ),
            )
        except GenerationError as e:
            return False, str(e)
        return True, f"Model {options.model or self.default_model} responded: {result.text.strip()[:40]}"
