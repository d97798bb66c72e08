"""
Exploration error taxonomy.
Collaborators raise these; stage boundaries convert them into status updates.
"""

from typing import Any


class ExplorationError(Exception):
    """Base class for failures reported during exploration."""
    pass


class PerceptionFailure(ExplorationError):
    """The perception source could not produce a snapshot."""
    pass


class DecisionFailure(ExplorationError):
    """The decision provider errored."""
    pass


class ActionFailure(ExplorationError):
    """A single action of a batch could not be applied."""

    def __init__(self, action: Any, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(reason)


class PersistenceFailure(ExplorationError):
    """A durable write batch was rejected."""
    pass


class SessionNotFound(KeyError):
    """Raised by the registry for unknown or already stopped sessions."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(session_id)

    def __str__(self) -> str:
        return f"Session {self.session_id} not found"


class StoryGenerationFailure(ExplorationError):
    """The LLM could not turn a recorded graph into user stories."""
    pass


class StoryNotFound(KeyError):
    """No generated stories for a session, or no story at the requested index."""

    def __init__(self, session_id: str, index: int | None = None):
        self.session_id = session_id
        self.index = index
        super().__init__(session_id)

    def __str__(self) -> str:
        if self.index is None:
            return f"No user stories generated for session {self.session_id}"
        return f"User story {self.index} not found for session {self.session_id}"


class ReplayNotFound(KeyError):
    """Raised for unknown replay ids."""

    def __init__(self, replay_id: str):
        self.replay_id = replay_id
        super().__init__(replay_id)

    def __str__(self) -> str:
        return f"Replay {self.replay_id} not found"
