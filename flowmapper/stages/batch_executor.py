"""
Action Batch Executor.
Applies an ordered batch of atomic actions with stop-at-first-failure semantics.
"""

import asyncio
import logging
from typing import Callable

from ..browser.selectors import sanitize_selector
from ..core.errors import ActionFailure
from ..core.interfaces import ActionTarget
from ..core.models import (
    Action,
    ActionKind,
    ActionOutcome,
    BatchReport,
    OutcomeStatus,
)


logger = logging.getLogger(__name__)


# Parameters each action kind must carry
REQUIRED_PARAMETERS: dict[ActionKind, tuple[str, ...]] = {
    ActionKind.ACTIVATE: ("target",),
    ActionKind.ENTER_TEXT: ("target", "text"),
    ActionKind.CHOOSE_OPTION: ("target", "value"),
    ActionKind.NAVIGATE: ("url",),
}


class ActionBatchExecutor:
    """
    Executes batches strictly left to right.

    The first failing action stops the batch; remaining actions are
    reported as skipped. Already applied actions are not rolled back.
    """

    def __init__(
        self,
        target: ActionTarget,
        sanitizer: Callable[[str | None], str | None] = sanitize_selector,
        settle_delay: float = 0.5,
        allow_navigation: bool = False,
    ):
        """
        Initialize executor.

        Args:
            target: Where actions are applied
            sanitizer: Target-reference normalization run before each dispatch
            settle_delay: Pause between consecutive actions, in seconds
            allow_navigation: Permit NAVIGATE actions (refused by default)
        """
        self.target = target
        self.sanitizer = sanitizer
        self.settle_delay = settle_delay
        self.allow_navigation = allow_navigation

    def validate(self, action: Action) -> None:
        """
        Check an action carries the parameters its kind requires.

        Raises:
            ActionFailure: Missing parameter or disallowed kind
        """
        if action.kind == ActionKind.NAVIGATE and not self.allow_navigation:
            raise ActionFailure(action, "navigate actions are not allowed during exploration")

        for field in REQUIRED_PARAMETERS[action.kind]:
            value = getattr(action, field)
            # Empty text is allowed: it clears the field
            if value is None or (value == "" and field != "text"):
                raise ActionFailure(action, f"missing required parameter '{field}' for {action.kind.value}")

    async def apply_one(self, action: Action) -> Action:
        """
        Validate, sanitize and apply one action.

        Returns:
            The action as dispatched (sanitized target)

        Raises:
            ActionFailure: The action could not be applied
        """
        self.validate(action)

        dispatched = action
        if action.target is not None:
            sanitized = self.sanitizer(action.target)
            if not sanitized:
                raise ActionFailure(action, f"selector '{action.target}' is empty after sanitizing")
            dispatched = action.model_copy(update={"target": sanitized})

        try:
            result = await self.target.apply(dispatched)
        except ActionFailure:
            raise
        except Exception as e:
            raise ActionFailure(action, f"{type(e).__name__}: {e}") from e

        if not result.success:
            raise ActionFailure(action, result.reason or "action failed")

        return dispatched

    async def execute(self, actions: list[Action]) -> BatchReport:
        """
        Execute a batch.

        Args:
            actions: Ordered actions

        Returns:
            Report with one outcome per submitted action, in order
        """
        report = BatchReport()
        failed = False

        for index, action in enumerate(actions):
            if failed:
                report.outcomes.append(ActionOutcome(action=action, status=OutcomeStatus.SKIPPED))
                continue

            if index > 0 and self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)

            try:
                await self.apply_one(action)
            except ActionFailure as e:
                logger.warning(f"[EXECUTE] {action.describe()} failed: {e.reason}")
                report.outcomes.append(ActionOutcome(
                    action=action,
                    status=OutcomeStatus.FAILED,
                    reason=e.reason,
                ))
                failed = True
                continue

            logger.info(f"[EXECUTE] Applied {action.describe()}")
            report.outcomes.append(ActionOutcome(action=action, status=OutcomeStatus.APPLIED))

        if actions:
            try:
                await self.target.settle()
            except Exception as e:
                logger.warning(f"[EXECUTE] Target did not settle after batch: {e}")

        return report
