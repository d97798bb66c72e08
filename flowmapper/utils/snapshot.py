"""
Snapshot parsing utilities.
Extracts action identifiers from snapshot text and narrows a snapshot to unexplored actions.

Snapshot lines look like::

    [3] BUTTON | Text: "Save" | Type: submit | Selector: #save

optionally prefixed with ``[MODAL]`` and flagged ``DISABLED``.
"""

import re
from urllib.parse import urlparse

from pydantic import BaseModel


ACTION_ID_SEPARATOR = "|||"
MODAL_MARKER = "[MODAL]"
DISABLED_MARKER = "DISABLED"
NO_UNEXPLORED_TEXT = "No unexplored actions available on this page."

_SELECTOR_RE = re.compile(r"Selector:\s*(.+?)$")
_TEXT_RE = re.compile(r'Text:\s*"([^"]+)"')
_TAG_RE = re.compile(r"^\[\d+\]\s+(\w+)")
_TYPE_RE = re.compile(r"\|\s*Type:\s*([^|]+)")


class ActionIdentifier(BaseModel):
    """Selector plus visible text, so elements sharing a selector stay distinct."""
    selector: str
    text: str = ""
    line: str = ""

    @property
    def unique_id(self) -> str:
        return make_action_id(self.selector, self.text)

    @property
    def in_modal(self) -> bool:
        return MODAL_MARKER in self.line


def make_action_id(selector: str, text: str = "") -> str:
    return f"{selector}{ACTION_ID_SEPARATOR}{text}"


def split_action_id(action_id: str) -> tuple[str, str]:
    """Split an action identifier into (selector, text)."""
    if ACTION_ID_SEPARATOR not in action_id:
        return action_id, ""
    selector, text = action_id.split(ACTION_ID_SEPARATOR, 1)
    return selector, text


def _is_element_line(line: str) -> bool:
    if not line.strip():
        return False
    if "===" in line or "Actionable Elements" in line:
        return False
    return True


def parse_line(line: str) -> ActionIdentifier | None:
    """Parse one snapshot line, or None for headers and non-element lines."""
    if not _is_element_line(line):
        return None

    selector_match = _SELECTOR_RE.search(line)
    if not selector_match:
        return None

    text_match = _TEXT_RE.search(line)
    return ActionIdentifier(
        selector=selector_match.group(1).strip(),
        text=text_match.group(1).strip() if text_match else "",
        line=line,
    )


def extract_action_identifiers(snapshot: str) -> list[ActionIdentifier]:
    """
    Extract the actionable elements of a snapshot.

    Disabled elements are skipped since they cannot be interacted with.

    Args:
        snapshot: Snapshot text

    Returns:
        Identifiers in snapshot order (duplicates removed)
    """
    identifiers = []
    seen = set()

    for line in snapshot.split("\n"):
        if DISABLED_MARKER in line:
            continue
        identifier = parse_line(line)
        if identifier is None or identifier.unique_id in seen:
            continue
        seen.add(identifier.unique_id)
        identifiers.append(identifier)

    return identifiers


def extract_action_ids(snapshot: str) -> list[str]:
    return [i.unique_id for i in extract_action_identifiers(snapshot)]


def filter_snapshot_to_unexplored(snapshot: str, unexplored: list[str]) -> str:
    """
    Narrow a snapshot to the lines of unexplored actions.

    Modal elements are grouped first under their own header.

    Args:
        snapshot: Full snapshot text
        unexplored: Unexplored action identifiers (or bare selectors)

    Returns:
        Filtered snapshot text
    """
    wanted = set(unexplored)
    modal_lines = []
    regular_lines = []

    for line in snapshot.split("\n"):
        if "Unexplored" in line:
            continue
        identifier = parse_line(line)
        if identifier is None:
            continue
        if identifier.unique_id not in wanted and identifier.selector not in wanted:
            continue
        if identifier.in_modal:
            modal_lines.append(line)
        else:
            regular_lines.append(line)

    result = []
    if modal_lines:
        result.append(f"=== MODAL SECTION ({len(modal_lines)} unexplored elements) - PRIORITIZE THESE ===")
        result.extend(modal_lines)
        if regular_lines:
            result.append("")
    if regular_lines:
        result.append(f"Unexplored Actionable Elements ({len(regular_lines)}):")
        result.extend(regular_lines)

    if not result:
        return NO_UNEXPLORED_TEXT
    return "\n".join(result)


def match_action_id(candidates: list[str], target: str, text: str | None = None) -> str | None:
    """
    Find the frontier action identifier an executed action corresponds to.

    Prefers an exact selector+text match, then the first identifier with
    the same selector.

    Args:
        candidates: Available action identifiers
        target: Selector the action was dispatched to
        text: Visible text of the element, when known

    Returns:
        Matching identifier, or None
    """
    if text is not None:
        exact = make_action_id(target, text)
        if exact in candidates:
            return exact

    for candidate in candidates:
        if candidate == target or split_action_id(candidate)[0] == target:
            return candidate
    return None


def element_tag(line: str) -> str:
    """Lowercase tag name of a snapshot line (``[3] BUTTON | ...`` gives ``button``)."""
    match = _TAG_RE.match(line.strip())
    return match.group(1).lower() if match else ""


def element_type(line: str) -> str | None:
    """Value of the ``Type:`` field of a snapshot line."""
    match = _TYPE_RE.search(line)
    return match.group(1).strip().lower() if match else None


def text_for_selector(snapshot: str, selector: str) -> str:
    """Visible text of the first element with the given selector."""
    for line in snapshot.split("\n"):
        identifier = parse_line(line)
        if identifier is not None and identifier.selector == selector:
            return identifier.text
    return ""


# ==============================================================================
# Section Patterns
# ==============================================================================

def section_pattern(locator: str) -> str:
    """
    Map a locator to its section pattern.

    ``/users/123/edit`` becomes ``/users/*``; the root stays ``/``.
    """
    path = urlparse(locator).path if "://" in locator else locator.split("?")[0]
    segments = [s for s in path.split("/") if s]
    if not segments:
        return "/"
    return f"/{segments[0]}/*"
