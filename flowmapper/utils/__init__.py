"""Utilities module - fingerprinting and snapshot parsing."""

from .hashing import compute_fingerprint, is_cycle
from .snapshot import extract_action_ids, filter_snapshot_to_unexplored

__all__ = [
    "compute_fingerprint",
    "is_cycle",
    "extract_action_ids",
    "filter_snapshot_to_unexplored",
]
