"""
Base Stage Class.
Common functionality for the observe/decide/execute/persist pipeline stages.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..core.state import ExplorationState


class BaseStage(ABC):
    """
    Abstract base class for pipeline stages.

    A stage reads the exploration state and returns a partial update; it
    never mutates the state itself.
    """

    name: str = "stage"

    def __init__(self):
        self.logger = logging.getLogger(f"flowmapper.stages.{self.name}")

    @abstractmethod
    async def execute(self, state: ExplorationState) -> dict[str, Any]:
        """
        Execute the stage.

        Args:
            state: Current exploration state (read-only)

        Returns:
            State updates to merge
        """
        pass

    def log(self, state: ExplorationState, message: str, level: int = logging.INFO) -> None:
        """Log a message tagged with the session and stage name."""
        self.logger.log(level, f"[{state.session_id[:8]}] [{self.name.upper()}] {message}")

    def history(self, message: str) -> list[str]:
        """Single history entry prefixed with the stage tag."""
        return [f"[{self.name.upper()}] {message}"]
