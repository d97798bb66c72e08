"""LLM module - OpenAI and Anthropic behind one completion interface."""

from .provider import LLMProvider, LLMRequest, LLMResponse, TokenUsage, get_llm_provider

__all__ = [
    "LLMProvider",
    "LLMRequest",
    "LLMResponse",
    "TokenUsage",
    "get_llm_provider",
]
