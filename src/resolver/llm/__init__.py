"""Text-generation access and response parsing."""

from resolver.llm.generator import AnthropicGenerator
from resolver.llm.parsing import extract_json

__all__ = ["AnthropicGenerator", "extract_json"]
