"""API module - FastAPI control surface and WebSocket events."""
