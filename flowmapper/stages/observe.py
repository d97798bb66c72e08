"""
Observe Stage - perceive the current state, fingerprint it and check for cycles and exhaustion.
"""

import logging
from typing import Any

from ..core.interfaces import PerceptionSource
from ..core.models import ExplorationStatus, StateRecord
from ..core.state import ExplorationState
from ..memory.frontier import FrontierManager
from ..utils.hashing import compute_fingerprint, is_cycle
from ..utils.snapshot import extract_action_ids
from .base import BaseStage


class ObserveStage(BaseStage):
    """
    Captures a snapshot and records it in the frontier.

    Produces exactly one history entry. A revisit of a known fingerprint
    ends the session (or backtracks when ``terminate_on_cycle`` is off),
    except when the controller navigated there on purpose to resume a
    backtrack target.
    """

    name = "observe"

    def __init__(self, perception: PerceptionSource, terminate_on_cycle: bool = True):
        super().__init__()
        self.perception = perception
        self.terminate_on_cycle = terminate_on_cycle

    async def execute(self, state: ExplorationState) -> dict[str, Any]:
        target = state.navigate_to
        self.log(state, f"Observing {target or state.current_locator or 'current page'}")

        try:
            observation = await self.perception.observe(target)
        except Exception as e:
            self.log(state, f"Perception failed: {e}", level=logging.ERROR)
            return {
                "status": ExplorationStatus.FAILURE,
                "last_error": str(e),
                "termination_reason": "Perception failed",
                "navigate_to": None,
                "action_history": self.history(f"Error: {e}"),
            }

        fingerprint = observation.fingerprint or compute_fingerprint(observation.snapshot)
        locator = observation.locator
        discovered = extract_action_ids(observation.snapshot)

        # Queue the state, and the transition that led here if one is open
        records = [StateRecord(
            session_id=state.session_id,
            fingerprint=fingerprint,
            locator=locator,
            action_count=len(discovered),
        )]
        parent = state.current_fingerprint or None
        if state.pending_transition is not None:
            parent = state.pending_transition.from_fingerprint
            records.append(state.pending_transition.complete(state.session_id, fingerprint, locator))

        revisit = is_cycle(fingerprint, state.visited_fingerprints)
        resumed = revisit and fingerprint == state.resume_fingerprint
        unexplored = FrontierManager.preview_unexplored(state.frontier, fingerprint, discovered)

        update: dict[str, Any] = {
            "current_locator": locator,
            "snapshot": observation.snapshot,
            "current_fingerprint": fingerprint,
            "frontier_observation": {
                "fingerprint": fingerprint,
                "locator": locator,
                "actions": discovered,
                "parent": parent,
            },
            "unexplored_actions": unexplored,
            "pending_records": records,
            "pending_transition": None,
            "navigate_to": None,
            "resume_fingerprint": None,
        }

        entry = f"Visited {locator}. Found {len(discovered)} actionable elements."
        self.log(state, f"{locator} fingerprint={fingerprint} actions={len(discovered)} unexplored={len(unexplored)}")

        if revisit and not resumed:
            if self.terminate_on_cycle:
                self.log(state, f"Cycle detected: {fingerprint} was visited before, ending exploration")
                entry += " [CYCLE DETECTED - Exploration complete]"
                update["status"] = ExplorationStatus.FLOW_END
                update["termination_reason"] = "Cycle detected"
            else:
                self.log(state, f"Cycle detected: {fingerprint} was visited before, backtracking")
                entry += " [CYCLE DETECTED - Backtracking]"
                update["status"] = ExplorationStatus.BACKTRACK
        elif not unexplored:
            if FrontierManager(state).is_exhausted(fingerprint, discovered):
                entry += " [No unexplored actions - Exploration complete]"
                update["status"] = ExplorationStatus.FLOW_END
                update["termination_reason"] = "No unexplored actions left"
            else:
                entry += " [No unexplored actions - Backtracking]"
                update["status"] = ExplorationStatus.BACKTRACK
        else:
            update["status"] = ExplorationStatus.CONTINUE

        update["action_history"] = self.history(entry)
        return update
