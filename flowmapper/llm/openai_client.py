"""
OpenAI completion client.
"""

from openai import AsyncOpenAI

from ..core.config import settings
from .provider import LLMProvider, LLMRequest, LLMResponse


class OpenAIClient(LLMProvider):
    """GPT models over chat completions."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        key = api_key or settings.openai_api_key
        if not key:
            raise ValueError("OpenAI API key not configured")

        self._model = model or settings.openai_model
        self.client = AsyncOpenAI(api_key=key)

    @property
    def model_name(self) -> str:
        return self._model

    async def complete(self, request: LLMRequest) -> LLMResponse:
        response = await self.client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
        )
