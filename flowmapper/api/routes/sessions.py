"""
Sessions API - Start, inspect and stop exploration sessions.
"""

from typing import Any
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from ...core.errors import SessionNotFound, StoryGenerationFailure, StoryNotFound
from ...core.models import Credentials, ReplayRun, SessionSummary, UserStories
from ...memory.replay_registry import ReplayRegistry
from ...memory.session_registry import SessionRegistry


router = APIRouter()


class CreateSessionRequest(BaseModel):
    """Request to start a new session."""
    target_url: str = Field(..., description="URL to explore")
    max_iterations: int | None = Field(default=None, ge=1, le=1000)
    credentials: Credentials | None = Field(
        default=None,
        description="Credentials for automatic login"
    )
    terminate_on_cycle: bool | None = Field(
        default=None,
        description="End on an exact state revisit instead of backtracking"
    )


class CreateSessionResponse(BaseModel):
    """Started session."""
    session_id: str
    status: str


class ReplayRequest(BaseModel):
    """Request to replay a generated story."""
    credentials: Credentials | None = Field(
        default=None,
        description="Credentials for the login step (defaults to configured ones)"
    )


class ReplayStartedResponse(BaseModel):
    """Started replay."""
    replay_id: str
    status: str
    steps: int


def _registry(req: Request) -> SessionRegistry:
    registry = getattr(req.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=500, detail="Session registry not initialized")
    return registry


def _replays(req: Request) -> ReplayRegistry:
    replays = getattr(req.app.state, "replays", None)
    if replays is None:
        raise HTTPException(status_code=500, detail="Replay registry not initialized")
    return replays


@router.post("", response_model=CreateSessionResponse)
async def create_session(
    request: CreateSessionRequest,
    req: Request
) -> CreateSessionResponse:
    """
    Start a new exploration session in the background.

    Args:
        request: Session configuration
        req: FastAPI request (for app state)

    Returns:
        Session id and initial status
    """
    registry = _registry(req)

    session_id = await registry.start(
        request.target_url,
        max_iterations=request.max_iterations,
        credentials=request.credentials,
        terminate_on_cycle=request.terminate_on_cycle,
    )
    summary = await registry.summary(session_id)

    return CreateSessionResponse(session_id=session_id, status=summary.status.value)


@router.get("", response_model=list[SessionSummary])
async def list_sessions(req: Request) -> list[SessionSummary]:
    """List all registered sessions."""
    return await _registry(req).list()


@router.get("/{session_id}", response_model=dict)
async def get_session(
    session_id: str,
    req: Request
) -> dict[str, Any]:
    """
    Get session status, history and termination reason.

    Args:
        session_id: Session ID
        req: FastAPI request

    Returns:
        Session details
    """
    try:
        return await _registry(req).status(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{session_id}/stop")
async def stop_session(session_id: str, req: Request) -> dict[str, Any]:
    """Stop a session and release its resources."""
    try:
        return await _registry(req).stop(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{session_id}")
async def delete_session(session_id: str, req: Request) -> dict[str, Any]:
    """Same as stop."""
    return await stop_session(session_id, req)


@router.get("/{session_id}/graph")
async def get_session_graph(session_id: str, req: Request) -> dict[str, Any]:
    """
    Get the recorded state graph of a session.

    Returns:
        Nodes (states) and edges (transitions)
    """
    try:
        return await _registry(req).graph(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


# ==============================================================================
# User Stories and Replay
# ==============================================================================

@router.post("/{session_id}/stories", response_model=UserStories)
async def generate_stories(session_id: str, req: Request) -> UserStories:
    """
    Generate user stories from the session's recorded graph.

    Replaces previously generated stories of the session.
    """
    try:
        return await _registry(req).generate_stories(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoryGenerationFailure as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/{session_id}/stories", response_model=UserStories)
async def get_stories(session_id: str, req: Request) -> UserStories:
    """Latest generated user stories of a session."""
    try:
        return await _registry(req).stories(session_id)
    except (SessionNotFound, StoryNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{session_id}/stories/{story_index}/replay", response_model=ReplayStartedResponse)
async def replay_story(
    session_id: str,
    story_index: int,
    req: Request,
    request: ReplayRequest | None = None,
) -> ReplayStartedResponse:
    """
    Replay one generated story in a fresh browser.

    Args:
        session_id: Session whose stories are replayed
        story_index: Position of the story in the generated list
        req: FastAPI request
        request: Optional credentials for the login step

    Returns:
        Replay id to poll for step progress
    """
    registry = _registry(req)
    try:
        stories = await registry.stories(session_id)
        graph = await registry.graph(session_id)
        run = await _replays(req).start(
            session_id,
            story_index,
            stories,
            graph,
            credentials=request.credentials if request else None,
        )
    except (SessionNotFound, StoryNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))

    return ReplayStartedResponse(replay_id=run.replay_id, status=run.status.value, steps=len(run.steps))


@router.get("/{session_id}/replays", response_model=list[ReplayRun])
async def list_replays(session_id: str, req: Request) -> list[ReplayRun]:
    """Replays started for a session, newest first."""
    return await _replays(req).for_session(session_id)
