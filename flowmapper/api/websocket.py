"""
WebSocket API - Real-time exploration event streaming.
"""

import asyncio
import json
import logging
from typing import Any
from datetime import datetime
from fastapi import APIRouter, WebSocket, WebSocketDisconnect


logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Manages WebSocket connections."""

    def __init__(self):
        self.active_connections: dict[str, list[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, session_id: str):
        """Accept new connection."""
        await websocket.accept()
        self.active_connections.setdefault(session_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, session_id: str):
        """Remove connection."""
        connections = self.active_connections.get(session_id, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(session_id, None)

    async def broadcast(self, session_id: str, message: dict[str, Any]):
        """Broadcast message to all connections for a session."""
        connections = list(self.active_connections.get(session_id, []))
        if not connections:
            return

        message["timestamp"] = datetime.now().isoformat()
        message_json = json.dumps(message, default=str)

        for connection in connections:
            try:
                await connection.send_text(message_json)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"[WS] Dropping dead connection for {session_id[:8]}: {e}")
                self.disconnect(connection, session_id)


manager = ConnectionManager()


@router.websocket("/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    """
    WebSocket endpoint for real-time updates.

    Sends events:
    - session_started / session_finished
    - iteration_started
    - stage_started / stage_finished
    - status_changed
    - backtrack

    Args:
        websocket: WebSocket connection
        session_id: Session to subscribe to
    """
    await manager.connect(websocket, session_id)

    try:
        await websocket.send_json({
            "event": "connected",
            "session_id": session_id,
            "timestamp": datetime.now().isoformat()
        })

        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=30.0)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    continue

                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

            except asyncio.TimeoutError:
                # Keep-alive
                await websocket.send_json({"type": "ping"})

    except WebSocketDisconnect:
        manager.disconnect(websocket, session_id)
    except RuntimeError as e:
        logger.warning(f"[WS] Connection error for {session_id[:8]}: {e}")
        manager.disconnect(websocket, session_id)


async def emit_event(session_id: str, event: str, data: dict[str, Any] | None = None):
    """
    Emit an event to all subscribers.

    Matches the registry's event callback signature.

    Args:
        session_id: Session ID
        event: Event name
        data: Event data
    """
    message = {
        "event": event,
        "session_id": session_id,
        **(data or {})
    }
    await manager.broadcast(session_id, message)
