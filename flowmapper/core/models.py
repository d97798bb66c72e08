"""
Pydantic models for the flowmapper exploration core.
Defines actions, decisions, batch outcomes, observations, hints and durable records.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Any
from pydantic import BaseModel, ConfigDict, Field


# ==============================================================================
# Enumerations
# ==============================================================================

class ExplorationStatus(str, Enum):
    """Status of one exploration run."""
    CONTINUE = "CONTINUE"
    FLOW_END = "FLOW_END"
    FAILURE = "FAILURE"
    BACKTRACK = "BACKTRACK"

    @property
    def is_terminal(self) -> bool:
        return self in (ExplorationStatus.FLOW_END, ExplorationStatus.FAILURE)


class SessionStatus(str, Enum):
    """Lifecycle status of a session in the registry."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ActionKind(str, Enum):
    """Kinds of atomic UI actions."""
    ACTIVATE = "activate"
    ENTER_TEXT = "enter_text"
    CHOOSE_OPTION = "choose_option"
    NAVIGATE = "navigate"


class DecisionKind(str, Enum):
    """Normalized shapes of a decision."""
    SINGLE = "single"
    BATCH = "batch"
    TERMINAL = "terminal"


class OutcomeStatus(str, Enum):
    """What happened to one action of a batch."""
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"


# ==============================================================================
# Actions and Decisions
# ==============================================================================

class Action(BaseModel):
    """An atomic UI action awaiting execution."""
    kind: ActionKind
    target: str | None = None  # Selector of the element
    text: str | None = None
    value: str | None = None
    url: str | None = None

    def describe(self) -> str:
        """Human-readable one-liner used in history entries."""
        if self.kind == ActionKind.ENTER_TEXT:
            text = self.text or ""
            preview = text[:20] + ("..." if len(text) > 20 else "")
            return f'enter_text on {self.target} with text "{preview}"'
        if self.kind == ActionKind.CHOOSE_OPTION:
            return f'choose_option on {self.target} with value "{self.value}"'
        if self.kind == ActionKind.NAVIGATE:
            return f"navigate to {self.url}"
        return f"activate on {self.target}"


class DecisionResult(BaseModel):
    """Normalized output of the decision stage."""
    kind: DecisionKind
    actions: list[Action] = Field(default_factory=list)
    reason: str | None = None
    parse_failed: bool = False

    @classmethod
    def terminal(cls, reason: str | None = None, parse_failed: bool = False) -> "DecisionResult":
        return cls(kind=DecisionKind.TERMINAL, reason=reason, parse_failed=parse_failed)

    @classmethod
    def of(cls, actions: list[Action]) -> "DecisionResult":
        kind = DecisionKind.SINGLE if len(actions) == 1 else DecisionKind.BATCH
        return cls(kind=kind, actions=actions)


class ApplyResult(BaseModel):
    """Result reported by an action target for one action."""
    success: bool
    reason: str | None = None


class ActionOutcome(BaseModel):
    """Outcome of one action inside a batch."""
    action: Action
    status: OutcomeStatus
    reason: str | None = None


class BatchReport(BaseModel):
    """Per-action outcomes of one executed batch, in submission order."""
    outcomes: list[ActionOutcome] = Field(default_factory=list)

    @property
    def applied(self) -> list[Action]:
        return [o.action for o in self.outcomes if o.status == OutcomeStatus.APPLIED]

    @property
    def failed(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def skipped(self) -> list[Action]:
        return [o.action for o in self.outcomes if o.status == OutcomeStatus.SKIPPED]

    @property
    def attempted(self) -> list[Action]:
        """Actions actually issued to the target (applied or failed)."""
        return [o.action for o in self.outcomes if o.status != OutcomeStatus.SKIPPED]

    @property
    def succeeded(self) -> bool:
        return not self.failed

    def describe_applied(self) -> str:
        return " → ".join(a.describe() for a in self.applied)

    def history_entry(self, locator: str) -> str:
        """
        Render the single consolidated history entry for this batch.

        Args:
            locator: Where the batch was executed

        Returns:
            History entry naming applied, failed and skipped actions in order
        """
        applied = [a.describe() for a in self.applied]
        failed = [f"{o.action.describe()} ({o.reason})" for o in self.failed]
        skipped = [a.describe() for a in self.skipped]

        if not failed:
            return f"[EXECUTE] Batch executed at {locator}: {' → '.join(applied)}."

        parts = [
            f"applied: {', '.join(applied) or 'none'}",
            f"failed: {', '.join(failed)}",
            f"skipped: {', '.join(skipped) or 'none'}",
        ]
        return f"[EXECUTE] Batch failed at {locator}; " + "; ".join(parts) + "."


# ==============================================================================
# Perception and Hints
# ==============================================================================

class Observation(BaseModel):
    """What the perception source reports about the current state."""
    snapshot: str
    locator: str
    fingerprint: str | None = None


class Credentials(BaseModel):
    """Login credentials offered to a session."""
    username: str
    password: str


class LoginFields(BaseModel):
    """Targets of a detected login form."""
    username_target: str | None = None
    password_target: str | None = None
    submit_target: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.username_target and self.password_target and self.submit_target)


class CapabilityHints(BaseModel):
    """Structured hints handed to the decision provider."""
    login_form: bool = False
    login_fields: LoginFields | None = None
    credentials: Credentials | None = None
    modal_present: bool = False
    modal_targets: list[str] = Field(default_factory=list)
    modal_close_targets: list[str] = Field(default_factory=list)
    interacted_modal_targets: list[str] = Field(default_factory=list)
    section_coverage: str = ""
    unexplored_count: int = 0

    @property
    def credentials_available(self) -> bool:
        return self.credentials is not None


# ==============================================================================
# Durable Records
# ==============================================================================

class StateRecord(BaseModel):
    """A discovered state to be persisted."""
    kind: Literal["state"] = "state"
    session_id: str
    fingerprint: str
    locator: str
    action_count: int = 0
    observed_at: datetime = Field(default_factory=datetime.now)


class TransitionRecord(BaseModel):
    """A batch of actions leading from one state to another."""
    kind: Literal["transition"] = "transition"
    session_id: str
    from_fingerprint: str
    from_locator: str
    to_fingerprint: str | None = None  # None when the destination was never observed
    to_locator: str | None = None
    description: str
    first_target: str | None = None
    success: bool = True
    recorded_at: datetime = Field(default_factory=datetime.now)


PersistRecord = StateRecord | TransitionRecord


class PendingTransition(BaseModel):
    """A successful batch waiting for the next observation to learn its destination."""
    from_fingerprint: str
    from_locator: str
    description: str
    first_target: str | None = None

    def complete(self, session_id: str, to_fingerprint: str | None, to_locator: str | None) -> TransitionRecord:
        return TransitionRecord(
            session_id=session_id,
            from_fingerprint=self.from_fingerprint,
            from_locator=self.from_locator,
            to_fingerprint=to_fingerprint,
            to_locator=to_locator,
            description=self.description,
            first_target=self.first_target,
        )


# ==============================================================================
# Session Models
# ==============================================================================

class SessionConfig(BaseModel):
    """Configuration for an exploration session."""
    target_url: str
    max_iterations: int = 20
    credentials: Credentials | None = None
    history_tail_size: int = 5
    terminate_on_cycle: bool = True


class SessionSummary(BaseModel):
    """Listing view of a session."""
    session_id: str
    status: SessionStatus
    target_url: str
    created_at: datetime
    exploration_status: ExplorationStatus | None = None
    iteration: int = 0
    states_discovered: int = 0
    token_usage: dict[str, int] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)


# ==============================================================================
# User Stories and Replay
# ==============================================================================

class StoryTransition(BaseModel):
    """One hop of a story, keyed by the state fingerprints of the recorded graph."""
    model_config = ConfigDict(populate_by_name=True)

    from_state: str = Field(alias="from")
    to_state: str | None = Field(default=None, alias="to")
    action: str


class UserStory(BaseModel):
    """A user-facing flow read out of the explored graph."""
    title: str
    description: str = ""
    steps: list[str] = Field(default_factory=list)
    flow: list[StoryTransition] = Field(default_factory=list)


class UserStories(BaseModel):
    """Stories generated for one session."""
    stories: list[UserStory] = Field(default_factory=list)
    summary: str = ""
    token_usage: dict[str, int] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=datetime.now)


class ReplayStatus(str, Enum):
    """Status of a replay run or of one of its steps."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ReplayStep(BaseModel):
    """Progress of one replay step."""
    index: int
    description: str
    status: ReplayStatus = ReplayStatus.PENDING
    error: str | None = None
    updated_at: datetime | None = None


class ReplayRun(BaseModel):
    """A story being re-run against a fresh browser."""
    replay_id: str
    session_id: str
    story_index: int
    story_title: str
    status: ReplayStatus = ReplayStatus.PENDING
    steps: list[ReplayStep] = Field(default_factory=list)
    error: str | None = None
    started_at: datetime = Field(default_factory=datetime.now)
    ended_at: datetime | None = None
