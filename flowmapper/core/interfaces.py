"""
Collaborator interfaces.
The exploration core talks to perception, decision, action and persistence only through these.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence

from .models import (
    Action,
    ApplyResult,
    CapabilityHints,
    DecisionResult,
    Observation,
    StateRecord,
    TransitionRecord,
)


class PerceptionSource(ABC):
    """Produces canonical snapshots of the live target."""

    @abstractmethod
    async def observe(self, locator: str | None = None) -> Observation:
        """
        Capture the current state, loading ``locator`` first when given.

        Must be stable: two calls with no intervening action batch and no
        change to the target return the same snapshot.

        Raises:
            PerceptionFailure: The target could not be reached
        """
        pass

    async def close(self) -> None:
        pass


class ActionTarget(ABC):
    """Applies atomic actions to the live target."""

    @abstractmethod
    async def apply(self, action: Action) -> ApplyResult:
        """Apply one action; side effects are external."""
        pass

    async def settle(self) -> None:
        """Wait for the target to go quiet after a batch."""
        pass

    async def close(self) -> None:
        pass


class PersistenceSink(ABC):
    """Durable store of discovered states and transitions."""

    @abstractmethod
    async def append_batch(self, records: Sequence[StateRecord | TransitionRecord]) -> bool:
        """
        Write all records as one unit, or none of them.

        Implementations must use parameterized commands only.

        Returns:
            True on success. Failure is reported by returning False or
            raising PersistenceFailure.
        """
        pass

    async def close(self) -> None:
        pass


class DecisionProvider(ABC):
    """Chooses the next action(s) from a snapshot."""

    @abstractmethod
    async def decide(
        self,
        snapshot: str,
        history_tail: list[str],
        hints: CapabilityHints,
    ) -> DecisionResult | dict[str, Any] | list[Any] | str:
        """
        Decide what to do next.

        Args:
            snapshot: Snapshot filtered to unexplored actions
            history_tail: Most recent history entries
            hints: Structured capability hints

        Returns:
            A DecisionResult or raw output that the core normalizes
        """
        pass

    @property
    def token_usage(self) -> dict[str, int]:
        return {}
