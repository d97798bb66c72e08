"""
FSM Store - SQLite persistence sink for discovered states and transitions.
Each batch is written inside one transaction; every statement is parameterized.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from ..core.errors import PersistenceFailure
from ..core.interfaces import PersistenceSink
from ..core.models import PersistRecord, StateRecord, TransitionRecord, UserStories


logger = logging.getLogger(__name__)


SCHEMA = """
    -- Discovered states, one row per session and fingerprint
    CREATE TABLE IF NOT EXISTS page_states (
        session_id TEXT NOT NULL,
        state_hash TEXT NOT NULL,
        url TEXT,
        action_count INTEGER DEFAULT 0,
        first_seen TIMESTAMP,
        last_seen TIMESTAMP,
        visit_count INTEGER DEFAULT 1,
        PRIMARY KEY (session_id, state_hash)
    );

    -- Batches that led from one state to another ('' while unobserved)
    CREATE TABLE IF NOT EXISTS transitions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        from_state_hash TEXT NOT NULL,
        to_state_hash TEXT NOT NULL DEFAULT '',
        description TEXT NOT NULL,
        action_target TEXT,
        success BOOLEAN,
        first_seen TIMESTAMP,
        last_seen TIMESTAMP,
        traversal_count INTEGER DEFAULT 1,
        UNIQUE (session_id, from_state_hash, to_state_hash, description)
    );

    CREATE INDEX IF NOT EXISTS idx_transitions_from
        ON transitions(session_id, from_state_hash);
    CREATE INDEX IF NOT EXISTS idx_transitions_to
        ON transitions(session_id, to_state_hash);

    -- Latest generated user stories per session, as JSON
    CREATE TABLE IF NOT EXISTS user_stories (
        session_id TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        generated_at TIMESTAMP
    );
"""

UPSERT_STATE = """
    INSERT INTO page_states
    (session_id, state_hash, url, action_count, first_seen, last_seen)
    VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT(session_id, state_hash) DO UPDATE SET
        visit_count = visit_count + 1,
        action_count = excluded.action_count,
        last_seen = excluded.last_seen
"""

# Endpoint of a transition whose own state record was lost with an earlier batch
ENSURE_STATE = """
    INSERT OR IGNORE INTO page_states
    (session_id, state_hash, url, first_seen, last_seen)
    VALUES (?, ?, ?, ?, ?)
"""

UPSERT_STORIES = """
    INSERT INTO user_stories (session_id, payload, generated_at)
    VALUES (?, ?, ?)
    ON CONFLICT(session_id) DO UPDATE SET
        payload = excluded.payload,
        generated_at = excluded.generated_at
"""

UPSERT_TRANSITION = """
    INSERT INTO transitions
    (session_id, from_state_hash, to_state_hash, description, action_target,
     success, first_seen, last_seen)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(session_id, from_state_hash, to_state_hash, description) DO UPDATE SET
        traversal_count = traversal_count + 1,
        success = excluded.success,
        last_seen = excluded.last_seen
"""


class FSMStore(PersistenceSink):
    """
    SQLite-based storage for the explored state machine.

    One store (and connection) per session. Batches are serialized with a
    lock and applied all-or-nothing.
    """

    def __init__(self, db_path: str):
        """
        Initialize FSM store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._closed = False

    async def initialize(self) -> None:
        """Open the connection and create tables."""
        if self.db is not None:
            return
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(self.db_path, timeout=30)
        await self.db.executescript(SCHEMA)
        await self.db.commit()
        self._closed = False
        logger.debug(f"[PERSIST] Opened FSM store at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        self._closed = True
        if self.db:
            await self.db.close()
            self.db = None

    # =========================================================================
    # Batch Writes
    # =========================================================================

    async def append_batch(self, records: list[PersistRecord]) -> bool:
        """
        Write a batch of records atomically.

        State records are written before transitions, and both endpoint
        states of every transition are ensured in the same transaction, so
        a transition never exists without its states.

        Raises:
            PersistenceFailure: The batch was rolled back
        """
        if not records:
            return True

        async with self._lock:
            if self._closed:
                raise PersistenceFailure("FSM store is closed")
            if self.db is None:
                await self.initialize()

            states = [r for r in records if isinstance(r, StateRecord)]
            transitions = [r for r in records if isinstance(r, TransitionRecord)]

            try:
                for record in states:
                    await self._write_state(record)
                for record in transitions:
                    await self._write_transition(record)
                await self.db.commit()
            except Exception as e:
                try:
                    await self.db.rollback()
                except (aiosqlite.Error, ValueError) as rollback_error:
                    logger.warning(f"[PERSIST] Rollback failed: {rollback_error}")
                raise PersistenceFailure(f"Batch of {len(records)} record(s) rolled back: {e}") from e

        logger.debug(f"[PERSIST] Wrote {len(states)} state(s), {len(transitions)} transition(s)")
        return True

    async def _write_state(self, record: StateRecord) -> None:
        seen = record.observed_at.isoformat()
        await self.db.execute(UPSERT_STATE, (
            record.session_id,
            record.fingerprint,
            record.locator,
            record.action_count,
            seen,
            seen,
        ))

    async def _write_transition(self, record: TransitionRecord) -> None:
        seen = record.recorded_at.isoformat()

        await self.db.execute(ENSURE_STATE, (
            record.session_id, record.from_fingerprint, record.from_locator, seen, seen,
        ))
        if record.to_fingerprint:
            await self.db.execute(ENSURE_STATE, (
                record.session_id, record.to_fingerprint, record.to_locator, seen, seen,
            ))

        await self.db.execute(UPSERT_TRANSITION, (
            record.session_id,
            record.from_fingerprint,
            record.to_fingerprint or "",
            record.description,
            record.first_target,
            record.success,
            seen,
            seen,
        ))

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_fsm_graph(self, session_id: str) -> dict[str, Any]:
        """
        Get the FSM graph for visualization.

        Returns:
            Dictionary with nodes and edges for graph visualization
        """
        await self.initialize()
        nodes = []
        edges = []

        async with self.db.execute("""
            SELECT state_hash, url, action_count, visit_count
            FROM page_states WHERE session_id = ?
            ORDER BY first_seen
        """, (session_id,)) as cursor:
            async for row in cursor:
                nodes.append({
                    "id": row[0],
                    "url": row[1],
                    "actions": row[2],
                    "visits": row[3],
                })

        async with self.db.execute("""
            SELECT from_state_hash, to_state_hash, description, action_target,
                   success, traversal_count
            FROM transitions WHERE session_id = ?
            ORDER BY id
        """, (session_id,)) as cursor:
            async for row in cursor:
                edges.append({
                    "from": row[0],
                    "to": row[1] or None,
                    "action": row[2],
                    "target": row[3],
                    "success": bool(row[4]),
                    "traversals": row[5],
                })

        return {"nodes": nodes, "edges": edges}

    async def count_states(self, session_id: str) -> int:
        await self.initialize()
        async with self.db.execute(
            "SELECT COUNT(*) FROM page_states WHERE session_id = ?", (session_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    # =========================================================================
    # User Stories
    # =========================================================================

    async def save_user_stories(self, session_id: str, stories: UserStories) -> None:
        """Replace the stored stories of a session."""
        await self.initialize()
        async with self._lock:
            await self.db.execute(UPSERT_STORIES, (
                session_id,
                stories.model_dump_json(by_alias=True),
                stories.generated_at.isoformat(),
            ))
            await self.db.commit()

    async def load_user_stories(self, session_id: str) -> UserStories | None:
        await self.initialize()
        async with self.db.execute(
            "SELECT payload FROM user_stories WHERE session_id = ?", (session_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return UserStories.model_validate_json(row[0]) if row else None
