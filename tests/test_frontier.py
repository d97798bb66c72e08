"""Frontier bookkeeping, backtrack ordering and fingerprint cycle detection."""

from flowmapper.core.state import BacktrackTarget, ExplorationState
from flowmapper.memory.frontier import FrontierManager
from flowmapper.utils.hashing import FINGERPRINT_LENGTH, compute_fingerprint, is_cycle


def make_manager() -> FrontierManager:
    return FrontierManager(ExplorationState(session_id="s"))


# ==============================================================================
# Fingerprints
# ==============================================================================

def test_fingerprint_is_stable_and_truncated():
    fp = compute_fingerprint("Actionable Elements (1):\n[0] BUTTON | Selector: #a")

    assert fp == compute_fingerprint("Actionable Elements (1):\n[0] BUTTON | Selector: #a")
    assert len(fp) == FINGERPRINT_LENGTH
    assert all(c in "0123456789abcdef" for c in fp)


def test_fingerprint_differs_for_different_snapshots():
    assert compute_fingerprint("page one") != compute_fingerprint("page two")


def test_cycle_is_exact_membership():
    visited = ["aaaa", "bbbb"]

    assert is_cycle("aaaa", visited)
    assert not is_cycle("cccc", visited)
    assert not is_cycle("aaaa", [])


# ==============================================================================
# Frontier
# ==============================================================================

def test_observation_unions_actions_and_keeps_first_parent():
    manager = make_manager()

    manager.record_observation("x", "/", ["a", "b"], parent_fingerprint="root")
    manager.record_observation("x", "/", ["b", "c"], parent_fingerprint="other")

    record = manager.frontier["x"]
    assert record.available_actions == ["a", "b", "c"]
    assert record.parent_fingerprint == "root"


def test_explored_stays_subset_of_available():
    manager = make_manager()
    manager.record_observation("x", "/", ["a", "b"])

    assert manager.mark_explored("x", "a")
    assert not manager.mark_explored("x", "a")
    assert not manager.mark_explored("x", "zzz")
    assert not manager.mark_explored("unknown", "a")
    assert manager.unexplored_actions("x") == ["b"]


def test_preview_does_not_touch_frontier():
    manager = make_manager()
    manager.record_observation("x", "/", ["a"])
    manager.mark_explored("x", "a")

    preview = FrontierManager.preview_unexplored(manager.frontier, "x", ["a", "b"])

    assert preview == ["b"]
    assert manager.frontier["x"].available_actions == ["a"]
    assert FrontierManager.preview_unexplored(manager.frontier, "new", ["c", "c"]) == ["c"]


# ==============================================================================
# Backtrack stack
# ==============================================================================

def test_push_skips_exhausted_states_and_never_duplicates():
    manager = make_manager()
    manager.record_observation("x", "/", ["a", "b"])
    manager.record_observation("y", "/y", ["c"])
    manager.mark_explored("y", "c")

    assert manager.push_if_unexplored("x")
    assert not manager.push_if_unexplored("x")
    assert not manager.push_if_unexplored("y")
    assert [t.fingerprint for t in manager.stack] == ["x"]


def test_pop_prefers_most_unexplored_then_most_recent():
    manager = make_manager()
    manager.record_observation("x", "/x", ["a", "b"])
    manager.record_observation("y", "/y", ["c", "d"])
    manager.record_observation("z", "/z", ["e"])
    for fp in ("x", "y", "z"):
        manager.push_if_unexplored(fp)

    first, _ = manager.pop_next()
    second, _ = manager.pop_next()
    third, _ = manager.pop_next()

    assert [first.fingerprint, second.fingerprint, third.fingerprint] == ["y", "x", "z"]
    assert manager.pop_next() == (None, [])


def test_pop_recomputes_counts_and_drops_exhausted_entries():
    manager = make_manager()
    manager.record_observation("x", "/x", ["a"])
    manager.record_observation("y", "/y", ["b", "c"])
    manager.push_if_unexplored("x")
    manager.push_if_unexplored("y")

    manager.mark_explored("y", "b")
    manager.mark_explored("y", "c")

    target, notes = manager.pop_next()

    assert target.fingerprint == "x"
    assert notes == []
    assert manager.stack == []


def test_pop_skips_stale_entries_with_note():
    manager = make_manager()
    manager.record_observation("x", "/x", ["a"])
    manager.push_if_unexplored("x")
    manager.stack.append(BacktrackTarget(fingerprint="ghost", locator="/gone", unexplored_count=9, sequence=99))

    target, notes = manager.pop_next()

    assert target.fingerprint == "x"
    assert notes == ["[BACKTRACK] Skipped stale target ghost: no frontier record"]


def test_exhausted_when_stack_empty_and_nothing_left():
    manager = make_manager()
    manager.record_observation("x", "/", ["a"])
    assert not manager.is_exhausted("x")

    manager.mark_explored("x", "a")
    assert manager.is_exhausted("x")


def test_exhaustion_previews_unrecorded_observation():
    manager = make_manager()
    manager.record_observation("x", "/", ["a"])
    manager.mark_explored("x", "a")

    assert manager.is_exhausted("x", ["a"])
    assert not manager.is_exhausted("x", ["a", "b"])
    assert manager.frontier["x"].available_actions == ["a"]

    manager.record_observation("y", "/y", ["c"])
    manager.push_if_unexplored("y")
    assert not manager.is_exhausted("x", ["a"])


def test_section_coverage_summary():
    manager = make_manager()
    assert FrontierManager.section_coverage_summary(manager.frontier) == "No sections explored yet."

    manager.record_observation("a", "http://app/users/1", [])
    manager.record_observation("b", "http://app/users/2/edit", [])
    manager.record_observation("c", "http://app/", [])

    assert FrontierManager.section_coverage_summary(manager.frontier) == (
        "Explored sections: / (1 page), /users/* (2 pages)"
    )
