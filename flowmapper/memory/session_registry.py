"""
Session Registry - owns every running exploration session.
Maps session ids to their state, controller and collaborators.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from ..core.config import settings
from ..core.errors import SessionNotFound, StoryNotFound
from ..core.interfaces import ActionTarget, DecisionProvider, PerceptionSource, PersistenceSink
from ..core.models import (
    Credentials,
    ExplorationStatus,
    SessionConfig,
    SessionStatus,
    SessionSummary,
    UserStories,
)
from ..core.state import ExplorationState, create_initial_state
from ..inference.user_stories import UserStoryGenerator
from ..stages.batch_executor import ActionBatchExecutor
from ..stages.controller import ExplorationController
from ..stages.decide import DecideStage
from ..stages.execute import ExecuteStage
from ..stages.observe import ObserveStage
from ..stages.persist import PersistStage
from .fsm_store import FSMStore


logger = logging.getLogger(__name__)


SessionEventCallback = Callable[[str, str, dict[str, Any]], Awaitable[None]]


@dataclass
class SessionCollaborators:
    """External resources one session talks to."""
    perception: PerceptionSource
    target: ActionTarget
    decision_provider: DecisionProvider
    sink: PersistenceSink

    async def close(self) -> None:
        await release_resources(self.perception, self.target, self.decision_provider, self.sink)


async def release_resources(*resources: Any) -> None:
    """Close each distinct resource once; the browser is often both perception and target."""
    released: list[Any] = []
    for resource in resources:
        if any(resource is r for r in released):
            continue
        released.append(resource)
        close = getattr(resource, "close", None)
        if close is None:
            continue
        try:
            await close()
        except Exception as e:
            logger.warning(f"[REGISTRY] Failed to release {type(resource).__name__}: {e}")


CollaboratorsFactory = Callable[[SessionConfig], Awaitable[SessionCollaborators]]


async def default_collaborators_factory(config: SessionConfig) -> SessionCollaborators:
    """
    Build the production collaborators: Playwright browser, SQLite store and
    the configured decision provider.
    """
    from ..browser.manager import BrowserManager
    from ..decision import HeuristicDecisionProvider, LLMDecisionProvider

    browser = BrowserManager()
    store = FSMStore(settings.database_path)
    await store.initialize()

    if settings.decision_provider == "heuristic":
        provider = HeuristicDecisionProvider()
    else:
        provider = LLMDecisionProvider()

    return SessionCollaborators(
        perception=browser,
        target=browser,
        decision_provider=provider,
        sink=store,
    )


class Session:
    """One registered exploration session."""

    def __init__(
        self,
        session_id: str,
        config: SessionConfig,
        state: ExplorationState,
        controller: ExplorationController,
        collaborators: SessionCollaborators,
    ):
        self.session_id = session_id
        self.config = config
        self.state = state
        self.controller = controller
        self.collaborators = collaborators
        self.status = SessionStatus.IDLE
        self.created_at = datetime.now()
        self.task: asyncio.Task | None = None
        self.error: str | None = None
        self.stories: UserStories | None = None
        self._released = False

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self.collaborators.close()

    def summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.session_id,
            status=self.status,
            target_url=self.config.target_url,
            created_at=self.created_at,
            exploration_status=self.state.status,
            iteration=self.state.iteration,
            states_discovered=len(self.state.frontier),
            token_usage=self.collaborators.decision_provider.token_usage,
        )

    def detail(self) -> dict[str, Any]:
        return {
            **self.summary().model_dump(mode="json"),
            "current_locator": self.state.current_locator,
            "action_history": list(self.state.action_history),
            "iteration_statuses": [s.value for s in self.state.iteration_statuses],
            "termination_reason": self.state.termination_reason,
            "last_error": self.error or self.state.last_error,
            "backtrack_stack": [t.model_dump() for t in self.state.backtrack_stack],
        }


class SessionRegistry:
    """
    Starts, tracks and stops sessions.

    Map operations are serialized with a lock; sessions run as independent
    tasks on the same event loop and share nothing else.
    """

    def __init__(
        self,
        collaborators_factory: CollaboratorsFactory = default_collaborators_factory,
        on_event: SessionEventCallback | None = None,
        database_path: str | None = None,
        settle_delay: float | None = None,
        story_generator: UserStoryGenerator | None = None,
    ):
        """
        Initialize registry.

        Args:
            collaborators_factory: Builds the resources of a new session
            on_event: Async callback receiving (session_id, event, data)
            database_path: Store read by graph queries
            settle_delay: Pause between batch actions (defaults to settings)
            story_generator: Turns recorded graphs into user stories
        """
        self.collaborators_factory = collaborators_factory
        self.on_event = on_event
        self.database_path = database_path or settings.database_path
        self.settle_delay = settings.action_settle_delay if settle_delay is None else settle_delay
        self.story_generator = story_generator or UserStoryGenerator()
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def start(
        self,
        target_url: str,
        max_iterations: int | None = None,
        credentials: Credentials | None = None,
        terminate_on_cycle: bool | None = None,
    ) -> str:
        """
        Create a session and start exploring in the background.

        Returns:
            New session id
        """
        if credentials is None and settings.cred_username:
            credentials = Credentials(username=settings.cred_username, password=settings.cred_password)

        config = SessionConfig(
            target_url=target_url,
            max_iterations=settings.max_iterations if max_iterations is None else max_iterations,
            credentials=credentials,
            history_tail_size=settings.history_tail_size,
            terminate_on_cycle=settings.terminate_on_cycle if terminate_on_cycle is None else terminate_on_cycle,
        )
        session_id = str(uuid4())

        collaborators = await self.collaborators_factory(config)
        state = create_initial_state(session_id, target_url)
        controller = self._build_controller(session_id, config, collaborators)
        session = Session(session_id, config, state, controller, collaborators)

        async with self._lock:
            self._sessions[session_id] = session
            session.task = asyncio.create_task(self._run(session))

        logger.info(f"[REGISTRY] Started session {session_id[:8]} for {target_url}")
        return session_id

    async def status(self, session_id: str) -> dict[str, Any]:
        """
        Raises:
            SessionNotFound: Unknown or stopped session
        """
        session = await self._get(session_id)
        return session.detail()

    async def summary(self, session_id: str) -> SessionSummary:
        session = await self._get(session_id)
        return session.summary()

    async def stop(self, session_id: str) -> dict[str, Any]:
        """
        Remove a session, ask its controller to stop and release its resources.

        The task is not cancelled: it observes the stop at the next stage
        boundary, or fails once its released resources error out.

        Raises:
            SessionNotFound: Unknown or already stopped session
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)

        session.controller.request_stop()
        await session.release()

        logger.info(f"[REGISTRY] Stopped session {session_id[:8]}")
        return {"session_id": session_id, "stopped": True}

    async def list(self) -> list[SessionSummary]:
        async with self._lock:
            sessions = list(self._sessions.values())
        return [s.summary() for s in sessions]

    async def graph(self, session_id: str) -> dict[str, Any]:
        """Recorded states and transitions of a registered session."""
        await self._get(session_id)
        store = FSMStore(self.database_path)
        try:
            return await store.get_fsm_graph(session_id)
        finally:
            await store.close()

    async def generate_stories(self, session_id: str) -> UserStories:
        """
        Generate user stories from the recorded graph and store them.

        Raises:
            SessionNotFound: Unknown or stopped session
            StoryGenerationFailure: The LLM could not produce stories
        """
        session = await self._get(session_id)
        graph = await self.graph(session_id)
        stories = await self.story_generator.generate(graph)

        store = FSMStore(self.database_path)
        try:
            await store.save_user_stories(session_id, stories)
        finally:
            await store.close()

        session.stories = stories
        logger.info(f"[REGISTRY] Generated {len(stories.stories)} stories for session {session_id[:8]}")
        if self.on_event is not None:
            await self.on_event(session_id, "stories_generated", {"count": len(stories.stories)})
        return stories

    async def stories(self, session_id: str) -> UserStories:
        """
        Latest generated stories of a session.

        Raises:
            SessionNotFound: Unknown or stopped session
            StoryNotFound: No stories generated yet
        """
        session = await self._get(session_id)
        if session.stories is None:
            store = FSMStore(self.database_path)
            try:
                session.stories = await store.load_user_stories(session_id)
            finally:
                await store.close()
        if session.stories is None:
            raise StoryNotFound(session_id)
        return session.stories

    async def wait(self, session_id: str) -> ExplorationState:
        """Wait for a session's task to finish and return its final state."""
        session = await self._get(session_id)
        if session.task is not None:
            await asyncio.shield(session.task)
        return session.state

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop every session and give their tasks a moment to wind down."""
        async with self._lock:
            session_ids = list(self._sessions)
            tasks = [s.task for s in self._sessions.values() if s.task is not None]

        for session_id in session_ids:
            try:
                await self.stop(session_id)
            except SessionNotFound:
                continue

        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                logger.warning(f"[REGISTRY] Session task still running at shutdown, cancelling: {task.get_name()}")
                task.cancel()

    # ==========================================================================
    # Internals
    # ==========================================================================

    async def _get(self, session_id: str) -> Session:
        async with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _build_controller(
        self,
        session_id: str,
        config: SessionConfig,
        collaborators: SessionCollaborators,
    ) -> ExplorationController:
        executor = ActionBatchExecutor(
            collaborators.target,
            settle_delay=self.settle_delay,
        )

        on_event = None
        if self.on_event is not None:
            async def on_event(event: str, data: dict[str, Any]) -> None:
                await self.on_event(session_id, event, data)

        return ExplorationController(
            observe=ObserveStage(collaborators.perception, terminate_on_cycle=config.terminate_on_cycle),
            decide=DecideStage(
                collaborators.decision_provider,
                credentials=config.credentials,
                history_tail_size=config.history_tail_size,
            ),
            execute=ExecuteStage(executor),
            persist=PersistStage(collaborators.sink),
            max_iterations=config.max_iterations,
            on_event=on_event,
        )

    async def _run(self, session: Session) -> None:
        session.status = SessionStatus.RUNNING
        try:
            state = await session.controller.run(session.state)
            if state.status == ExplorationStatus.FLOW_END:
                session.status = SessionStatus.COMPLETED
            else:
                session.status = SessionStatus.ERROR
        except Exception as e:
            logger.exception(f"[REGISTRY] Session {session.session_id[:8]} crashed: {e}")
            session.status = SessionStatus.ERROR
            session.error = str(e)
        finally:
            await session.release()
