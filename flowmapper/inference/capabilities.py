"""
Capability Detection - pluggable detectors turning snapshot text into structured hints.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..core.models import CapabilityHints, Credentials


class CapabilityDetector(ABC):
    """
    Recognizes a capability (login form, modal dialog, ...) in a snapshot.
    Detectors only report hints; they never decide or act.
    """

    name: str = "detector"

    @abstractmethod
    def detect(self, snapshot: str) -> dict[str, Any]:
        """
        Inspect a snapshot.

        Args:
            snapshot: Full snapshot text

        Returns:
            CapabilityHints fields to set (empty when nothing was found)
        """
        pass


def detect_capabilities(
    snapshot: str,
    detectors: list[CapabilityDetector],
    credentials: Credentials | None = None,
    interacted_modal_targets: list[str] | None = None,
    section_coverage: str = "",
    unexplored_count: int = 0,
) -> CapabilityHints:
    """
    Run every detector and merge their findings into one hints object.

    Later detectors win on conflicting fields.

    Args:
        snapshot: Full snapshot text
        detectors: Detectors to run, in order
        credentials: Credentials offered to the session, if any
        interacted_modal_targets: Modal targets already exercised
        section_coverage: Section coverage summary
        unexplored_count: Unexplored actions on the current state

    Returns:
        Merged CapabilityHints
    """
    fields: dict[str, Any] = {}
    for detector in detectors:
        fields.update(detector.detect(snapshot))

    return CapabilityHints(
        credentials=credentials,
        interacted_modal_targets=list(interacted_modal_targets or []),
        section_coverage=section_coverage,
        unexplored_count=unexplored_count,
        **fields,
    )


def default_detectors() -> list[CapabilityDetector]:
    """The login and modal detectors shipped with flowmapper."""
    from .login_detector import LoginFormDetector
    from .modal_detector import ModalDetector
    return [LoginFormDetector(), ModalDetector()]
