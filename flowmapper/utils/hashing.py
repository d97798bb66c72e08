"""
Hashing Utilities - content fingerprints for state identity and cycle detection.
"""

import hashlib
from typing import Iterable


FINGERPRINT_LENGTH = 16  # Hex characters, i.e. 64 bits


def compute_fingerprint(snapshot: str) -> str:
    """
    Compute the identity of a state from its snapshot text.

    SHA-256 over the UTF-8 bytes, hex digest truncated to 16 characters
    (64 bits). The truncation trades compactness for a collision
    probability of roughly n^2 / 2^65 after n distinct states, which is
    below 1e-9 for a session of 100k states. Callers must not rely on
    two different snapshots never colliding, only on it being negligible.

    Args:
        snapshot: Canonical snapshot text (no timestamps or other noise)

    Returns:
        16-character lowercase hex fingerprint
    """
    digest = hashlib.sha256(snapshot.encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def is_cycle(fingerprint: str, visited: Iterable[str]) -> bool:
    """
    Check whether a fingerprint has been observed before.

    Args:
        fingerprint: Fingerprint of the state just observed
        visited: Fingerprints observed so far

    Returns:
        True iff the fingerprint is already in ``visited``
    """
    return fingerprint in set(visited)
