"""
Replay Registry - re-runs generated user stories against a fresh browser.
Each replay is a background task reporting progress step by step.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable
from uuid import uuid4

from ..core.config import settings
from ..core.errors import ActionFailure, ReplayNotFound, StoryNotFound
from ..core.interfaces import ActionTarget, PerceptionSource
from ..core.models import (
    Action,
    Credentials,
    ReplayRun,
    ReplayStatus,
    ReplayStep,
    UserStories,
    UserStory,
)
from ..decision.parser import parse_action_description
from ..decision.shortcuts import LoginShortcut
from ..inference.capabilities import detect_capabilities
from ..inference.login_detector import LoginFormDetector
from ..stages.batch_executor import ActionBatchExecutor
from .session_registry import SessionEventCallback, release_resources


logger = logging.getLogger(__name__)


@dataclass
class ReplayCollaborators:
    """Browser side of one replay."""
    perception: PerceptionSource
    target: ActionTarget

    async def close(self) -> None:
        await release_resources(self.perception, self.target)


ReplayCollaboratorsFactory = Callable[[], Awaitable[ReplayCollaborators]]

StepPerformer = Callable[[PerceptionSource, ActionBatchExecutor], Awaitable[None]]


async def default_replay_collaborators_factory() -> ReplayCollaborators:
    """A Playwright browser acting as both perception source and action target."""
    from ..browser.manager import BrowserManager

    browser = BrowserManager()
    return ReplayCollaborators(perception=browser, target=browser)


# ==============================================================================
# Step performers
# ==============================================================================

async def _apply(executor: ActionBatchExecutor, actions: list[Action]) -> None:
    report = await executor.execute(actions)
    if not report.succeeded:
        outcome = report.failed[0]
        raise ActionFailure(outcome.action, f"{outcome.action.describe()} failed: {outcome.reason}")


async def _login(
    perception: PerceptionSource,
    executor: ActionBatchExecutor,
    locator: str,
    credentials: Credentials,
) -> None:
    observation = await perception.observe(locator)
    hints = detect_capabilities(observation.snapshot, [LoginFormDetector()], credentials=credentials)
    decision = LoginShortcut().propose(hints, observation.locator, [], login_successful=False)
    if decision is None:
        logger.info(f"[REPLAY] No login form at {observation.locator}, continuing without login")
        return
    await _apply(executor, decision.actions)


async def _navigate(perception: PerceptionSource, executor: ActionBatchExecutor, locator: str) -> None:
    await perception.observe(locator)


async def _perform(perception: PerceptionSource, executor: ActionBatchExecutor, label: str) -> None:
    await _apply(executor, parse_action_description(label))


def plan_replay(
    story: UserStory,
    graph: dict[str, Any],
    credentials: Credentials | None = None,
) -> list[tuple[str, StepPerformer]]:
    """
    Lay out the steps of a story replay.

    An optional login, a navigation to the first state of the flow, then one
    step per flow transition. Flow states are resolved to URLs through the
    recorded graph; a state missing from it is taken as a URL.

    Args:
        story: Story to replay
        graph: Recorded graph of the story's session
        credentials: Credentials for the login step

    Returns:
        (description, performer) pairs in order
    """
    if not story.flow:
        return []

    locations = {node["id"]: node.get("url") for node in graph.get("nodes", [])}
    start = locations.get(story.flow[0].from_state) or story.flow[0].from_state

    steps: list[tuple[str, StepPerformer]] = []
    if credentials is not None:
        steps.append((f"Login as {credentials.username}", partial(_login, locator=start, credentials=credentials)))
    steps.append((f"Navigate to {start}", partial(_navigate, locator=start)))
    for item in story.flow:
        description = f"{item.action}: {item.from_state} → {item.to_state or '(unobserved)'}"
        steps.append((description, partial(_perform, label=item.action)))
    return steps


# ==============================================================================
# Registry
# ==============================================================================

class ReplayRegistry:
    """
    Starts and tracks story replays.

    Runs are kept in memory for the lifetime of the process; every replay
    gets its own browser, released when the run ends.
    """

    def __init__(
        self,
        collaborators_factory: ReplayCollaboratorsFactory = default_replay_collaborators_factory,
        on_event: SessionEventCallback | None = None,
        step_delay: float | None = None,
        settle_delay: float | None = None,
    ):
        """
        Initialize registry.

        Args:
            collaborators_factory: Builds the browser of a new replay
            on_event: Async callback receiving (session_id, event, data)
            step_delay: Pause after each completed step (defaults to settings)
            settle_delay: Pause between batch actions (defaults to settings)
        """
        self.collaborators_factory = collaborators_factory
        self.on_event = on_event
        self.step_delay = settings.replay_step_delay if step_delay is None else step_delay
        self.settle_delay = settings.action_settle_delay if settle_delay is None else settle_delay
        self._runs: dict[str, ReplayRun] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def start(
        self,
        session_id: str,
        story_index: int,
        stories: UserStories,
        graph: dict[str, Any],
        credentials: Credentials | None = None,
    ) -> ReplayRun:
        """
        Start replaying one story in the background.

        Raises:
            StoryNotFound: No story at ``story_index``
        """
        if not 0 <= story_index < len(stories.stories):
            raise StoryNotFound(session_id, story_index)
        story = stories.stories[story_index]

        if credentials is None and settings.cred_username:
            credentials = Credentials(username=settings.cred_username, password=settings.cred_password)

        plan = plan_replay(story, graph, credentials)
        run = ReplayRun(
            replay_id=str(uuid4()),
            session_id=session_id,
            story_index=story_index,
            story_title=story.title,
            steps=[ReplayStep(index=i, description=description) for i, (description, _) in enumerate(plan)],
        )

        async with self._lock:
            self._runs[run.replay_id] = run
            self._tasks[run.replay_id] = asyncio.create_task(
                self._run(run, [performer for _, performer in plan])
            )

        logger.info(f"[REPLAY] Started replay {run.replay_id[:8]} of '{story.title}' ({len(plan)} steps)")
        return run

    async def get(self, replay_id: str) -> ReplayRun:
        """
        Raises:
            ReplayNotFound: Unknown replay id
        """
        async with self._lock:
            run = self._runs.get(replay_id)
        if run is None:
            raise ReplayNotFound(replay_id)
        return run

    async def for_session(self, session_id: str) -> list[ReplayRun]:
        """Replays of a session, newest first."""
        async with self._lock:
            runs = [r for r in self._runs.values() if r.session_id == session_id]
        return sorted(runs, key=lambda r: r.started_at, reverse=True)

    async def wait(self, replay_id: str) -> ReplayRun:
        """Wait for a replay to finish and return it."""
        run = await self.get(replay_id)
        task = self._tasks.get(replay_id)
        if task is not None:
            await asyncio.shield(task)
        return run

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Give running replays a moment to finish, then cancel them."""
        async with self._lock:
            tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            logger.warning(f"[REPLAY] Replay still running at shutdown, cancelling: {task.get_name()}")
            task.cancel()

    # ==========================================================================
    # Internals
    # ==========================================================================

    async def _run(self, run: ReplayRun, performers: list[StepPerformer]) -> None:
        run.status = ReplayStatus.RUNNING
        collaborators: ReplayCollaborators | None = None
        try:
            collaborators = await self.collaborators_factory()
            executor = ActionBatchExecutor(
                collaborators.target,
                settle_delay=self.settle_delay,
                allow_navigation=True,
            )
            for step, performer in zip(run.steps, performers):
                await self._step(run, step, performer(collaborators.perception, executor))
                if self.step_delay > 0:
                    await asyncio.sleep(self.step_delay)
            run.status = ReplayStatus.COMPLETED
        except Exception as e:
            logger.warning(f"[REPLAY] Replay {run.replay_id[:8]} failed: {e}")
            run.status = ReplayStatus.FAILED
            run.error = str(e)
        finally:
            if run.status == ReplayStatus.RUNNING:
                run.status = ReplayStatus.FAILED
                run.error = "Replay cancelled"
            run.ended_at = datetime.now()
            if collaborators is not None:
                await collaborators.close()
            await self._emit(run, "replay_finished", {"status": run.status.value, "error": run.error})

    async def _step(self, run: ReplayRun, step: ReplayStep, work: Awaitable[None]) -> None:
        self._mark(step, ReplayStatus.RUNNING)
        await self._emit(run, "replay_step", step.model_dump(mode="json"))
        try:
            await work
        except Exception as e:
            self._mark(step, ReplayStatus.FAILED, error=str(e))
            await self._emit(run, "replay_step", step.model_dump(mode="json"))
            raise
        self._mark(step, ReplayStatus.COMPLETED)
        await self._emit(run, "replay_step", step.model_dump(mode="json"))

    @staticmethod
    def _mark(step: ReplayStep, status: ReplayStatus, error: str | None = None) -> None:
        step.status = status
        step.error = error
        step.updated_at = datetime.now()

    async def _emit(self, run: ReplayRun, event: str, data: dict[str, Any]) -> None:
        if self.on_event is None:
            return
        try:
            await self.on_event(run.session_id, event, {"replay_id": run.replay_id, **data})
        except Exception as e:
            logger.warning(f"[REPLAY] Event callback failed for {event}: {e}")
