"""
Frontier & Backtrack Manager.
Tracks which affordances of each discovered state have been exercised and keeps a
resumable stack of states that still have unexplored actions.
"""

import logging
from collections import Counter

from ..core.state import BacktrackTarget, ExplorationState, FrontierRecord
from ..utils.snapshot import section_pattern


logger = logging.getLogger(__name__)


class FrontierManager:
    """
    Operates on the frontier and backtrack stack of one ExplorationState.

    Only the controller's reducer calls the mutating methods; stages use the
    static previews.
    """

    def __init__(self, state: ExplorationState):
        self.state = state

    @property
    def frontier(self) -> dict[str, FrontierRecord]:
        return self.state.frontier

    @property
    def stack(self) -> list[BacktrackTarget]:
        return self.state.backtrack_stack

    # ==========================================================================
    # Frontier
    # ==========================================================================

    def record_observation(
        self,
        fingerprint: str,
        locator: str,
        discovered_actions: list[str],
        parent_fingerprint: str | None = None,
    ) -> FrontierRecord:
        """
        Union newly discovered actions into a state's record.

        Available actions never shrink: an action hidden on a later visit
        may reappear. The parent is set only when the record is created.

        Args:
            fingerprint: Observed state
            locator: Where it was observed
            discovered_actions: Action identifiers found in the snapshot
            parent_fingerprint: State the transition came from

        Returns:
            The (possibly new) frontier record
        """
        record = self.frontier.get(fingerprint)

        if record is None:
            record = FrontierRecord(
                fingerprint=fingerprint,
                locator=locator,
                parent_fingerprint=parent_fingerprint,
            )
            self.frontier[fingerprint] = record
            logger.debug(f"[FRONTIER] New state {fingerprint} at {locator}")

        known = set(record.available_actions)
        added = 0
        for action_id in discovered_actions:
            if action_id not in known:
                record.available_actions.append(action_id)
                known.add(action_id)
                added += 1

        if added:
            logger.debug(f"[FRONTIER] {fingerprint}: +{added} actions ({len(record.available_actions)} known)")

        return record

    def mark_explored(self, fingerprint: str, action_id: str) -> bool:
        """
        Mark an action of a state as exercised.

        Unknown states and actions that were never available are ignored so
        that explored stays a subset of available.

        Returns:
            True if the record changed
        """
        record = self.frontier.get(fingerprint)
        if record is None:
            return False
        if action_id not in record.available_actions:
            return False
        if action_id in record.explored_actions:
            return False

        record.explored_actions.append(action_id)
        return True

    def unexplored_actions(self, fingerprint: str) -> list[str]:
        record = self.frontier.get(fingerprint)
        if record is None:
            return []
        return record.unexplored()

    def unexplored_count(self, fingerprint: str) -> int:
        return len(self.unexplored_actions(fingerprint))

    # ==========================================================================
    # Backtrack Stack
    # ==========================================================================

    def push_if_unexplored(self, fingerprint: str) -> bool:
        """
        Push a state onto the backtrack stack if it has unexplored actions.

        An entry already on the stack is refreshed in place, never duplicated.

        Returns:
            True if a new entry was pushed
        """
        record = self.frontier.get(fingerprint)
        if record is None:
            return False

        count = self.unexplored_count(fingerprint)

        for entry in self.stack:
            if entry.fingerprint == fingerprint:
                entry.unexplored_count = count
                return False

        if count <= 0:
            return False

        self.state.push_sequence += 1
        self.stack.append(BacktrackTarget(
            fingerprint=fingerprint,
            locator=record.locator,
            unexplored_count=count,
            sequence=self.state.push_sequence,
        ))
        logger.info(f"[BACKTRACK] Pushed {fingerprint} ({record.locator}) with {count} unexplored actions")
        return True

    def pop_next(self) -> tuple[BacktrackTarget | None, list[str]]:
        """
        Pop the most promising backtrack target.

        Counts are recomputed from the frontier first. Entries whose record
        vanished are dropped with a soft-failure note; exhausted entries are
        dropped silently. Among the rest the largest unexplored count wins,
        ties going to the most recently pushed.

        Returns:
            (target or None, soft-failure notes for the history log)
        """
        notes = []
        survivors = []

        for entry in self.stack:
            if entry.fingerprint not in self.frontier:
                note = f"[BACKTRACK] Skipped stale target {entry.fingerprint}: no frontier record"
                logger.warning(note)
                notes.append(note)
                continue

            entry.unexplored_count = self.unexplored_count(entry.fingerprint)
            if entry.unexplored_count == 0:
                logger.debug(f"[BACKTRACK] Dropped exhausted target {entry.fingerprint}")
                continue

            survivors.append(entry)

        self.stack[:] = survivors

        if not survivors:
            return None, notes

        best = max(survivors, key=lambda e: (e.unexplored_count, e.sequence))
        self.stack.remove(best)
        logger.info(f"[BACKTRACK] Popped {best.fingerprint} ({best.locator}) with {best.unexplored_count} unexplored actions")
        return best, notes

    def is_exhausted(self, fingerprint: str, discovered: list[str] | None = None) -> bool:
        """
        Exploration is over when the stack is empty and this state has nothing left.

        Args:
            fingerprint: State to check
            discovered: Actions of an observation not yet recorded, previewed
                without touching the frontier
        """
        if self.stack:
            return False
        if discovered is None:
            return self.unexplored_count(fingerprint) == 0
        return not self.preview_unexplored(self.frontier, fingerprint, discovered)

    # ==========================================================================
    # Read-only helpers
    # ==========================================================================

    @staticmethod
    def preview_unexplored(
        frontier: dict[str, FrontierRecord],
        fingerprint: str,
        discovered: list[str],
    ) -> list[str]:
        """
        Unexplored actions a state would have once ``discovered`` is recorded.

        Pure: does not touch the frontier.
        """
        record = frontier.get(fingerprint)
        if record is None:
            return list(dict.fromkeys(discovered))

        available = list(dict.fromkeys(record.available_actions + discovered))
        explored = set(record.explored_actions)
        return [a for a in available if a not in explored]

    @staticmethod
    def section_coverage_summary(frontier: dict[str, FrontierRecord]) -> str:
        """Human-readable summary of the section patterns visited so far."""
        counts = Counter(section_pattern(r.locator) for r in frontier.values())
        if not counts:
            return "No sections explored yet."

        sections = ", ".join(
            f"{pattern} ({count} page{'s' if count != 1 else ''})"
            for pattern, count in sorted(counts.items())
        )
        return f"Explored sections: {sections}"
