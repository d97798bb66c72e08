"""
LLM Completion Interface.
One system prompt plus one user prompt in, reply text and token counts out.
"""

from abc import ABC, abstractmethod
from pydantic import BaseModel

from ..core.config import settings


class LLMRequest(BaseModel):
    """A single-turn completion: the decision call and story generation both fit this shape."""
    system_prompt: str
    user_prompt: str
    temperature: float = 0.1
    max_tokens: int = 1024


class LLMResponse(BaseModel):
    """Reply text and the tokens it cost."""
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class TokenUsage(BaseModel):
    """Running token totals across completions."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    calls: int = 0

    def add(self, response: LLMResponse) -> None:
        self.prompt_tokens += response.prompt_tokens
        self.completion_tokens += response.completion_tokens
        self.calls += 1

    def as_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.prompt_tokens + self.completion_tokens,
            "calls": self.calls,
        }


class LLMProvider(ABC):
    """
    Completion backend.
    Implemented by the OpenAI and Anthropic clients.
    """

    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """
        Run one completion.

        Args:
            request: Prompts and sampling parameters

        Returns:
            Reply text with token counts
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


def get_llm_provider(provider: str | None = None) -> LLMProvider:
    """
    Build the client named by ``provider`` or by ``settings.llm_provider``.

    Raises:
        ValueError: Unknown provider name or missing API key
    """
    provider = provider or settings.llm_provider

    if provider == "openai":
        from .openai_client import OpenAIClient
        return OpenAIClient()
    if provider == "anthropic":
        from .anthropic_client import AnthropicClient
        return AnthropicClient()
    raise ValueError(f"Unknown LLM provider: {provider}")
