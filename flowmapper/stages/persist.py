"""
Persist Stage - flush queued durable records to the persistence sink.
"""

import logging
from typing import Any

from ..core.errors import PersistenceFailure
from ..core.interfaces import PersistenceSink
from ..core.state import ExplorationState
from .base import BaseStage


class PersistStage(BaseStage):
    """
    Sends every queued record as one all-or-nothing batch.

    Durability is best-effort: a rejected batch is dropped, logged and
    noted in history, and exploration continues. Status is never changed.
    """

    name = "persist"

    def __init__(self, sink: PersistenceSink):
        super().__init__()
        self.sink = sink

    async def execute(self, state: ExplorationState) -> dict[str, Any]:
        records = list(state.pending_records)
        if not records:
            return {}

        try:
            if not await self.sink.append_batch(records):
                raise PersistenceFailure("sink rejected the batch")
        except Exception as e:
            self.log(state, f"Dropped batch of {len(records)} record(s): {e}", level=logging.ERROR)
            return {
                "clear_pending_records": True,
                "action_history": self.history(f"Error: {e}"),
            }

        self.log(state, f"Persisted {len(records)} record(s)")
        return {"clear_pending_records": True}
