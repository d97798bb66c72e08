"""Memory module - frontier tracking, the SQLite state graph store and the session and replay registries."""

from .frontier import FrontierManager
from .fsm_store import FSMStore

__all__ = [
    "FrontierManager",
    "FSMStore",
]
