"""
Exploration Controller.
Owns the observe → decide → execute → persist loop and the single reducer that
merges stage updates into the exploration state.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ..core.models import ExplorationStatus
from ..core.state import ExplorationState
from ..memory.frontier import FrontierManager
from .base import BaseStage


logger = logging.getLogger(__name__)


EventCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


# ==============================================================================
# Reducer
# ==============================================================================

# Lists extended rather than replaced
APPEND_CHANNELS = ("action_history", "pending_records", "iteration_statuses")

# Lists extended with values not already present
UNIQUE_APPEND_CHANNELS = ("login_attempted", "interacted_modal_targets")

# Applied through the FrontierManager, in this order
FRONTIER_CHANNELS = ("frontier_observation", "explored_actions", "backtrack_pushes")

# Owned by the FrontierManager, never assigned from an update
PROTECTED_FIELDS = ("frontier", "backtrack_stack", "push_sequence", "session_id")

FLAGS = ("clear_pending_records",)


def apply_update(state: ExplorationState, update: dict[str, Any]) -> None:
    """
    Merge a stage's partial update into the state.

    Args:
        state: State to mutate
        update: Partial update returned by a stage

    Raises:
        ValueError: The update names a key no channel accepts
    """
    known = set(ExplorationState.model_fields) - set(PROTECTED_FIELDS)
    allowed = known | set(FRONTIER_CHANNELS) | set(FLAGS)
    unknown = [key for key in update if key not in allowed]
    if unknown:
        raise ValueError(f"Unknown state update key(s): {', '.join(sorted(unknown))}")

    manager = FrontierManager(state)

    observation = update.get("frontier_observation")
    if observation:
        manager.record_observation(
            observation["fingerprint"],
            observation["locator"],
            observation.get("actions", []),
            observation.get("parent"),
        )

    explored = update.get("explored_actions")
    if explored:
        fingerprint = explored["fingerprint"]
        for action_id in explored.get("actions", []):
            manager.mark_explored(fingerprint, action_id)
        if fingerprint == state.current_fingerprint:
            state.unexplored_actions = manager.unexplored_actions(fingerprint)

    for fingerprint in update.get("backtrack_pushes", []):
        manager.push_if_unexplored(fingerprint)

    if update.get("clear_pending_records"):
        state.pending_records = []

    for key, value in update.items():
        if key in FRONTIER_CHANNELS or key in FLAGS:
            continue
        if key in APPEND_CHANNELS:
            getattr(state, key).extend(value)
        elif key in UNIQUE_APPEND_CHANNELS:
            current = getattr(state, key)
            for item in value:
                if item not in current:
                    current.append(item)
        else:
            setattr(state, key, value)


# ==============================================================================
# Controller
# ==============================================================================

class ExplorationController:
    """
    Runs one session's pipeline until a terminal status.

    Stages run strictly in sequence. PERSIST runs every iteration, whatever
    happened before it. Nothing raised by a stage escapes ``run``.
    """

    def __init__(
        self,
        observe: BaseStage,
        decide: BaseStage,
        execute: BaseStage,
        persist: BaseStage,
        max_iterations: int = 20,
        on_event: EventCallback | None = None,
    ):
        self.observe = observe
        self.decide = decide
        self.execute = execute
        self.persist = persist
        self.max_iterations = max_iterations
        self.on_event = on_event
        self._stop = asyncio.Event()

    def request_stop(self) -> None:
        """Ask the loop to stop at the next stage boundary."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    async def run(self, state: ExplorationState) -> ExplorationState:
        """
        Explore until FLOW_END or FAILURE.

        Args:
            state: Session state, mutated in place

        Returns:
            The same state, terminal
        """
        logger.info(f"[CONTROLLER] Session {state.session_id[:8]} starting at {state.navigate_to or state.current_locator}")
        await self._emit("session_started", {"session_id": state.session_id})

        while not state.status.is_terminal:
            if state.iteration >= self.max_iterations:
                await self._apply(state, {
                    "status": ExplorationStatus.FLOW_END,
                    "termination_reason": "Iteration cap reached",
                    "action_history": [f"[CONTROLLER] Iteration cap ({self.max_iterations}) reached."],
                })
                break

            await self._apply(state, {"iteration": state.iteration + 1})
            await self._emit("iteration_started", {"iteration": state.iteration})

            for stage in (self.observe, self.decide, self.execute):
                if self.stop_requested:
                    await self._stopped(state)
                    break
                await self._run_stage(stage, state)

            await self._run_stage(self.persist, state)
            await self._apply(state, {"iteration_statuses": [state.status]})

            if self.stop_requested and not state.status.is_terminal:
                await self._stopped(state)
            elif state.status == ExplorationStatus.BACKTRACK:
                await self._backtrack(state)

        await self._finish(state)
        return state

    # ==========================================================================
    # Internals
    # ==========================================================================

    async def _run_stage(self, stage: BaseStage, state: ExplorationState) -> None:
        await self._emit("stage_started", {"stage": stage.name, "iteration": state.iteration})
        try:
            update = await stage.execute(state)
            await self._apply(state, update)
        except Exception as e:
            logger.exception(f"[CONTROLLER] Stage {stage.name} crashed: {e}")
            await self._apply(state, {
                "status": ExplorationStatus.FAILURE,
                "last_error": str(e),
                "termination_reason": f"Stage {stage.name} crashed",
                "action_history": [f"[{stage.name.upper()}] Error: {e}"],
            })
        await self._emit("stage_finished", {"stage": stage.name, "status": state.status.value})

    async def _apply(self, state: ExplorationState, update: dict[str, Any]) -> None:
        previous = state.status
        apply_update(state, update)
        if state.status != previous:
            await self._emit("status_changed", {"from": previous.value, "to": state.status.value})

    async def _stopped(self, state: ExplorationState) -> None:
        logger.info(f"[CONTROLLER] Session {state.session_id[:8]} stopped by request")
        await self._apply(state, {
            "status": ExplorationStatus.FAILURE,
            "termination_reason": "Stopped by request",
            "action_history": ["[CONTROLLER] Stopped by request."],
        })

    async def _backtrack(self, state: ExplorationState) -> None:
        target, notes = FrontierManager(state).pop_next()

        if target is None:
            await self._apply(state, {
                "status": ExplorationStatus.FLOW_END,
                "termination_reason": "Frontier exhausted",
                "action_history": notes + ["[BACKTRACK] Nothing left to explore."],
            })
            return

        await self._apply(state, {
            "status": ExplorationStatus.CONTINUE,
            "navigate_to": target.locator,
            "resume_fingerprint": target.fingerprint,
            "current_locator": target.locator,
            "current_fingerprint": target.fingerprint,
            "action_history": notes + [
                f"[BACKTRACK] Resuming at {target.locator} ({target.unexplored_count} unexplored actions)."
            ],
        })
        await self._emit("backtrack", {
            "fingerprint": target.fingerprint,
            "locator": target.locator,
            "unexplored_count": target.unexplored_count,
        })

    async def _finish(self, state: ExplorationState) -> None:
        """Queue any open transition and flush what is left."""
        if state.pending_transition is not None:
            record = state.pending_transition.complete(state.session_id, None, None)
            await self._apply(state, {"pending_records": [record], "pending_transition": None})

        # Resources are already released after a stop
        if state.pending_records and not self.stop_requested:
            await self._run_stage(self.persist, state)

        logger.info(
            f"[CONTROLLER] Session {state.session_id[:8]} finished: "
            f"{state.status.value} after {state.iteration} iteration(s) ({state.termination_reason})"
        )
        await self._emit("session_finished", {
            "status": state.status.value,
            "termination_reason": state.termination_reason,
            "iteration": state.iteration,
        })

    async def _emit(self, event: str, data: dict[str, Any]) -> None:
        if self.on_event is None:
            return
        try:
            await self.on_event(event, data)
        except Exception as e:
            logger.warning(f"[CONTROLLER] Event callback failed for {event}: {e}")
