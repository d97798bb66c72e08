"""
Modal Detector - recognizes open dialogs and their close controls.
"""

import re
from typing import Any

from ..utils.snapshot import MODAL_MARKER, parse_line
from .capabilities import CapabilityDetector


class ModalDetector(CapabilityDetector):
    """Detects modal dialogs marked in the snapshot or hinted at by common class names."""

    name = "modal"

    MODAL_INDICATORS = [
        'role="dialog"', 'aria-modal="true"',
        "[modal]", "[dialog]", "modal section",
        "modal-dialog", "modal-content", "modal-overlay", "modal-backdrop",
        "dialog-container", "dialog-overlay",
        "el-dialog", "ant-modal", "mui-dialog",
    ]

    CLOSE_PATTERN = re.compile(r"\b(close|cancel|dismiss)\b|[×✕]", re.IGNORECASE)

    def detect(self, snapshot: str) -> dict[str, Any]:
        lower = snapshot.lower()
        if not any(indicator in lower for indicator in self.MODAL_INDICATORS):
            return {}

        targets = []
        close_targets = []
        for line in snapshot.split("\n"):
            if MODAL_MARKER not in line:
                continue
            identifier = parse_line(line)
            if identifier is None:
                continue
            targets.append(identifier.selector)
            if self.CLOSE_PATTERN.search(identifier.text) or "close" in identifier.selector.lower():
                close_targets.append(identifier.selector)

        return {
            "modal_present": True,
            "modal_targets": targets,
            "modal_close_targets": close_targets,
        }
