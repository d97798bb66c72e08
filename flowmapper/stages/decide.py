"""
Decide Stage - choose the next action(s) through a shortcut or the decision provider.
"""

import logging
from typing import Any

from ..core.interfaces import DecisionProvider
from ..core.models import Credentials, DecisionKind, ExplorationStatus
from ..core.state import ExplorationState
from ..decision.parser import normalize_decision
from ..decision.shortcuts import LoginShortcut
from ..inference.capabilities import CapabilityDetector, default_detectors, detect_capabilities
from ..memory.frontier import FrontierManager
from ..utils.snapshot import filter_snapshot_to_unexplored
from .base import BaseStage


class DecideStage(BaseStage):
    """
    Turns the current snapshot into pending actions.

    Capability detectors feed structured hints to the provider; a detected
    login form with credentials available is handled by the login shortcut
    without calling the provider. Output that cannot be normalized ends
    the flow instead of being retried.
    """

    name = "decide"

    def __init__(
        self,
        provider: DecisionProvider,
        detectors: list[CapabilityDetector] | None = None,
        credentials: Credentials | None = None,
        history_tail_size: int = 5,
        shortcut: LoginShortcut | None = None,
    ):
        super().__init__()
        self.provider = provider
        self.detectors = detectors if detectors is not None else default_detectors()
        self.credentials = credentials
        self.history_tail_size = history_tail_size
        self.shortcut = shortcut or LoginShortcut()

    async def execute(self, state: ExplorationState) -> dict[str, Any]:
        if state.status != ExplorationStatus.CONTINUE:
            return {}

        update: dict[str, Any] = {}
        login_successful = state.login_successful

        try:
            hints = detect_capabilities(
                state.snapshot,
                self.detectors,
                credentials=None if login_successful else self.credentials,
                interacted_modal_targets=state.interacted_modal_targets,
                section_coverage=FrontierManager.section_coverage_summary(state.frontier),
                unexplored_count=len(state.unexplored_actions),
            )

            # Left the login screen after an attempt: the login worked
            if state.login_attempted and not hints.login_form and not login_successful:
                self.log(state, "Login successful, credentials disabled")
                login_successful = True
                update["login_successful"] = True
                hints.credentials = None

            shortcut = self.shortcut.propose(
                hints,
                state.current_locator,
                state.login_attempted,
                login_successful,
            )
            if shortcut is not None:
                self.log(state, "Login form detected with credentials, preparing login batch")
                update.update({
                    "pending_actions": shortcut.actions,
                    "login_attempted": [state.current_locator],
                    "action_history": self.history(
                        "Auto-login: batch prepared (fill username, fill password, submit)"
                    ),
                })
                return update

            filtered = filter_snapshot_to_unexplored(state.snapshot, state.unexplored_actions)
            raw = await self.provider.decide(
                filtered,
                state.history_tail(self.history_tail_size),
                hints,
            )
        except Exception as e:
            self.log(state, f"Decision provider failed: {e}", level=logging.ERROR)
            update.update({
                "status": ExplorationStatus.FAILURE,
                "pending_actions": [],
                "last_error": str(e),
                "termination_reason": "Decision provider failed",
                "action_history": self.history(f"Error: {e}"),
            })
            return update

        decision = normalize_decision(raw)

        if decision.kind == DecisionKind.TERMINAL:
            update["status"] = ExplorationStatus.FLOW_END
            update["pending_actions"] = []
            if decision.parse_failed:
                self.log(state, f"Could not parse provider output, ending flow: {decision.reason}", level=logging.WARNING)
                update["termination_reason"] = "Unparsable decision"
                update["action_history"] = self.history(
                    f"Could not parse provider output ({decision.reason}) - ending flow."
                )
            else:
                self.log(state, "Provider ended the flow")
                update["termination_reason"] = decision.reason or "Provider ended the flow"
                update["action_history"] = self.history("Agent decided to end flow.")
            return update

        touched_modal = [
            a.target for a in decision.actions
            if a.target and a.target in hints.modal_targets
        ]
        if touched_modal:
            update["interacted_modal_targets"] = touched_modal

        described = " → ".join(a.describe() for a in decision.actions)
        self.log(state, f"Selected {len(decision.actions)} action(s): {described}")
        update["pending_actions"] = decision.actions
        update["action_history"] = self.history(
            f"Selected {len(decision.actions)} action(s): {described}"
        )
        return update
