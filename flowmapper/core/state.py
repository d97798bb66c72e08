"""
Exploration State Definition.
Per-session context read by every pipeline stage and updated only by the controller's reducer.
"""

from pydantic import BaseModel, Field

from .models import (
    Action,
    ExplorationStatus,
    PendingTransition,
    StateRecord,
    TransitionRecord,
)


class FrontierRecord(BaseModel):
    """
    Known and exercised affordances of one discovered state.

    Action collections are ordered and duplicate-free so that iteration
    follows discovery order.
    """
    fingerprint: str
    locator: str
    available_actions: list[str] = Field(default_factory=list)
    explored_actions: list[str] = Field(default_factory=list)
    parent_fingerprint: str | None = None

    def unexplored(self) -> list[str]:
        explored = set(self.explored_actions)
        return [a for a in self.available_actions if a not in explored]


class BacktrackTarget(BaseModel):
    """A frontier state eligible for resumed exploration."""
    fingerprint: str
    locator: str
    unexplored_count: int
    sequence: int = 0  # Push order, used for LIFO tie-breaks


class ExplorationState(BaseModel):
    """
    Mutable context of one exploration session.

    The session registry owns the instance; stages read it and return
    partial updates which the controller merges in.
    """

    # Session identification
    session_id: str

    # Perceived target
    current_locator: str = ""
    snapshot: str = ""
    current_fingerprint: str = ""

    # Append-only iteration log
    action_history: list[str] = Field(default_factory=list)

    # Frontier and backtracking
    frontier: dict[str, FrontierRecord] = Field(default_factory=dict)
    backtrack_stack: list[BacktrackTarget] = Field(default_factory=list)
    push_sequence: int = 0
    unexplored_actions: list[str] = Field(default_factory=list)

    # Current iteration
    pending_actions: list[Action] = Field(default_factory=list)
    status: ExplorationStatus = ExplorationStatus.CONTINUE
    iteration: int = 0
    iteration_statuses: list[ExplorationStatus] = Field(default_factory=list)

    # Navigation
    navigate_to: str | None = None
    resume_fingerprint: str | None = None

    # Durable records waiting for PERSIST
    pending_transition: PendingTransition | None = None
    pending_records: list[StateRecord | TransitionRecord] = Field(default_factory=list)

    # Capability tracking
    login_attempted: list[str] = Field(default_factory=list)
    login_successful: bool = False
    interacted_modal_targets: list[str] = Field(default_factory=list)

    # Control flow
    termination_reason: str | None = None
    last_error: str | None = None

    @property
    def visited_fingerprints(self) -> list[str]:
        """Every fingerprint observed this session, in first-seen order."""
        return list(self.frontier.keys())

    def history_tail(self, size: int) -> list[str]:
        if size <= 0:
            return []
        return self.action_history[-size:]


def create_initial_state(session_id: str, target_url: str) -> ExplorationState:
    """Create initial state for a new session."""
    return ExplorationState(
        session_id=session_id,
        current_locator=target_url,
        navigate_to=target_url,
    )
