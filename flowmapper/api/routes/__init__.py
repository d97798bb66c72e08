"""API route modules."""

from . import replays, sessions

__all__ = ["replays", "sessions"]
