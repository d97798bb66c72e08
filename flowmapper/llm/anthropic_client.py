"""
Anthropic completion client.
"""

import logging

from anthropic import AsyncAnthropic

from ..core.config import settings
from .provider import LLMProvider, LLMRequest, LLMResponse


logger = logging.getLogger(__name__)


class AnthropicClient(LLMProvider):
    """Claude over the Messages API; the system prompt travels in its own field."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        key = api_key or settings.anthropic_api_key
        if not key:
            raise ValueError("Anthropic API key not configured")

        self._model = model or settings.anthropic_model
        self.client = AsyncAnthropic(api_key=key)

    @property
    def model_name(self) -> str:
        return self._model

    async def complete(self, request: LLMRequest) -> LLMResponse:
        response = await self.client.messages.create(
            model=self._model,
            system=request.system_prompt,
            messages=[{"role": "user", "content": request.user_prompt}],
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text:
            logger.warning(f"[LLM] {self._model} returned no text blocks (stop_reason={response.stop_reason})")

        return LLMResponse(
            content=text,
            model=response.model,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )
