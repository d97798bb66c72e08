"""
Execute Stage - apply the pending batch and update the frontier.
"""

import logging
from typing import Any

from ..core.models import Action, ExplorationStatus, PendingTransition, TransitionRecord
from ..core.state import ExplorationState
from ..utils.snapshot import match_action_id, text_for_selector
from .base import BaseStage
from .batch_executor import ActionBatchExecutor


class ExecuteStage(BaseStage):
    """
    Runs the pending batch through the executor.

    Every attempted action is marked explored on the source state, and the
    source is pushed onto the backtrack stack while it still has unexplored
    actions. A fully applied batch leaves a pending transition which the
    next observation completes.
    """

    name = "execute"

    def __init__(self, executor: ActionBatchExecutor):
        super().__init__()
        self.executor = executor

    async def execute(self, state: ExplorationState) -> dict[str, Any]:
        if state.status != ExplorationStatus.CONTINUE:
            return {}

        if not state.pending_actions:
            self.log(state, "No pending actions", level=logging.WARNING)
            return {
                "status": ExplorationStatus.FAILURE,
                "termination_reason": "No pending actions",
                "action_history": self.history("No pending actions to execute."),
            }

        source_fp = state.current_fingerprint
        source_locator = state.current_locator

        report = await self.executor.execute(state.pending_actions)

        explored = self._explored_ids(state, report.attempted)
        update: dict[str, Any] = {
            "action_history": [report.history_entry(source_locator)],
            "explored_actions": {"fingerprint": source_fp, "actions": explored},
            "backtrack_pushes": [source_fp],
            "pending_actions": [],
        }

        applied = report.applied
        first_target = applied[0].target if applied else None

        if report.succeeded:
            self.log(state, f"Batch of {len(applied)} action(s) applied at {source_locator}")
            update["pending_transition"] = PendingTransition(
                from_fingerprint=source_fp,
                from_locator=source_locator,
                description=report.describe_applied(),
                first_target=first_target,
            )
            return update

        failure = report.failed[0]
        self.log(
            state,
            f"Batch failed at {failure.action.describe()}: {failure.reason}",
            level=logging.ERROR,
        )
        update.update({
            "status": ExplorationStatus.FAILURE,
            "last_error": failure.reason,
            "termination_reason": "Action failed",
        })

        # The applied prefix still changed the page: record where it started
        if applied:
            update["pending_records"] = [TransitionRecord(
                session_id=state.session_id,
                from_fingerprint=source_fp,
                from_locator=source_locator,
                description=report.describe_applied(),
                first_target=first_target,
                success=False,
            )]

        return update

    def _explored_ids(self, state: ExplorationState, attempted: list[Action]) -> list[str]:
        """Map attempted actions back to frontier action identifiers."""
        record = state.frontier.get(state.current_fingerprint)
        available = record.available_actions if record else []

        ids = []
        for action in attempted:
            if not action.target:
                continue
            text = text_for_selector(state.snapshot, action.target)
            action_id = (
                match_action_id(state.unexplored_actions, action.target, text)
                or match_action_id(available, action.target, text)
            )
            if action_id and action_id not in ids:
                ids.append(action_id)
        return ids
