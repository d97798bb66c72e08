"""Core module - configuration, state, models, interfaces and errors."""

from .config import settings
from .state import ExplorationState, FrontierRecord, BacktrackTarget, create_initial_state
from .models import (
    Action,
    ActionKind,
    BatchReport,
    CapabilityHints,
    DecisionResult,
    ExplorationStatus,
    Observation,
    ReplayRun,
    ReplayStatus,
    SessionStatus,
    StateRecord,
    TransitionRecord,
    UserStories,
    UserStory,
)
from .errors import (
    ExplorationError,
    PerceptionFailure,
    DecisionFailure,
    ActionFailure,
    PersistenceFailure,
    SessionNotFound,
    StoryGenerationFailure,
    StoryNotFound,
    ReplayNotFound,
)

__all__ = [
    "settings",
    "ExplorationState",
    "FrontierRecord",
    "BacktrackTarget",
    "create_initial_state",
    "Action",
    "ActionKind",
    "BatchReport",
    "CapabilityHints",
    "DecisionResult",
    "ExplorationStatus",
    "Observation",
    "ReplayRun",
    "ReplayStatus",
    "SessionStatus",
    "StateRecord",
    "TransitionRecord",
    "UserStories",
    "UserStory",
    "ExplorationError",
    "PerceptionFailure",
    "DecisionFailure",
    "ActionFailure",
    "PersistenceFailure",
    "SessionNotFound",
    "StoryGenerationFailure",
    "StoryNotFound",
    "ReplayNotFound",
]
