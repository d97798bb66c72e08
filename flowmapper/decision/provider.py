"""
LLM Decision Provider.
Asks the configured LLM for the next action(s) and returns its raw reply for normalization.
"""

import logging

from ..core.config import settings
from ..core.errors import DecisionFailure
from ..core.interfaces import DecisionProvider
from ..core.models import CapabilityHints
from ..llm.provider import LLMProvider, LLMRequest, TokenUsage, get_llm_provider
from .prompts import DECISION_USER_PROMPT, build_decision_prompt


logger = logging.getLogger(__name__)


class LLMDecisionProvider(DecisionProvider):
    """
    Decision provider backed by OpenAI or Anthropic.
    Tracks token usage across calls.
    """

    def __init__(
        self,
        llm_provider: LLMProvider | None = None,
        temperature: float | None = None,
        max_tokens: int = 1024,
    ):
        """
        Initialize provider.

        Args:
            llm_provider: LLM client (uses default if not provided)
            temperature: Sampling temperature (defaults to config)
            max_tokens: Maximum tokens per reply
        """
        self.llm = llm_provider or get_llm_provider()
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self.max_tokens = max_tokens
        self._usage = TokenUsage()

    @property
    def token_usage(self) -> dict[str, int]:
        return self._usage.as_dict()

    async def decide(
        self,
        snapshot: str,
        history_tail: list[str],
        hints: CapabilityHints,
    ) -> str:
        """
        Ask the LLM what to do next.

        Args:
            snapshot: Snapshot filtered to unexplored actions
            history_tail: Most recent history entries
            hints: Capability hints

        Returns:
            Raw reply text

        Raises:
            DecisionFailure: If the LLM call fails
        """
        request = LLMRequest(
            system_prompt=build_decision_prompt(snapshot, history_tail, hints),
            user_prompt=DECISION_USER_PROMPT,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        try:
            response = await self.llm.complete(request)
        except Exception as e:
            raise DecisionFailure(f"{self.llm.model_name} call failed: {e}") from e

        self._usage.add(response)

        logger.debug(f"[DECIDE] {self.llm.model_name} replied: {response.content[:300]}")
        return response.content
