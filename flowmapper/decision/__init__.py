"""Decision module - normalization, prompts, shortcuts and decision providers."""

from .parser import normalize_decision, parse_action_description
from .shortcuts import LoginShortcut
from .heuristic import HeuristicDecisionProvider
from .provider import LLMDecisionProvider

__all__ = [
    "normalize_decision",
    "parse_action_description",
    "LoginShortcut",
    "HeuristicDecisionProvider",
    "LLMDecisionProvider",
]
