"""
Replays API - Step progress of story replays.
"""

from fastapi import APIRouter, HTTPException, Request

from ...core.errors import ReplayNotFound
from ...core.models import ReplayRun


router = APIRouter()


@router.get("/{replay_id}", response_model=ReplayRun)
async def get_replay(replay_id: str, req: Request) -> ReplayRun:
    """
    Get a replay with the status of each of its steps.

    Args:
        replay_id: Replay ID
        req: FastAPI request

    Returns:
        Replay run
    """
    replays = getattr(req.app.state, "replays", None)
    if replays is None:
        raise HTTPException(status_code=500, detail="Replay registry not initialized")
    try:
        return await replays.get(replay_id)
    except ReplayNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
