"""
Decision normalization.
Turns whatever a decision provider returned into a single action, a batch, or a terminal signal.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from ..core.models import Action, ActionKind, DecisionKind, DecisionResult


logger = logging.getLogger(__name__)


TERMINAL_TOKEN = "FLOW_END"

# Tool names accepted from providers
TOOL_KINDS: dict[str, ActionKind] = {
    "clickelement": ActionKind.ACTIVATE,
    "click": ActionKind.ACTIVATE,
    "activate": ActionKind.ACTIVATE,
    "typetext": ActionKind.ENTER_TEXT,
    "type": ActionKind.ENTER_TEXT,
    "enter_text": ActionKind.ENTER_TEXT,
    "fill": ActionKind.ENTER_TEXT,
    "selectoption": ActionKind.CHOOSE_OPTION,
    "select": ActionKind.CHOOSE_OPTION,
    "choose_option": ActionKind.CHOOSE_OPTION,
    "navigate": ActionKind.NAVIGATE,
}

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class UnparsableDecision(ValueError):
    """Raw provider output matches none of the accepted shapes."""
    pass


def action_from_mapping(data: dict[str, Any]) -> Action:
    """
    Build an Action from a provider mapping.

    Accepts ``{"tool": ..., "selector": ..., "text": ..., "value": ..., "url": ...}``
    and the equivalent ``kind``/``target`` spelling.

    Raises:
        UnparsableDecision: Unknown tool or not a mapping
    """
    if not isinstance(data, dict):
        raise UnparsableDecision(f"action is not an object: {data!r}")

    tool = data.get("tool") or data.get("kind")
    if tool is None:
        if not (data.get("selector") or data.get("target")):
            raise UnparsableDecision(f"action has neither tool nor selector: {data!r}")
        tool = "clickElement"

    kind = TOOL_KINDS.get(str(tool).strip().lower())
    if kind is None:
        raise UnparsableDecision(f"unknown tool '{tool}'")

    def optional_str(key: str, *aliases: str) -> str | None:
        for name in (key, *aliases):
            if data.get(name) is not None:
                return str(data[name])
        return None

    try:
        return Action(
            kind=kind,
            target=optional_str("selector", "target"),
            text=optional_str("text"),
            value=optional_str("value"),
            url=optional_str("url"),
        )
    except ValidationError as e:
        raise UnparsableDecision(str(e)) from e


def _from_list(items: list[Any]) -> DecisionResult:
    if not items:
        raise UnparsableDecision("empty action list")
    return DecisionResult.of([action_from_mapping(item) for item in items])


def _from_mapping(data: dict[str, Any]) -> DecisionResult:
    status = str(data.get("status", "")).upper()
    if status == TERMINAL_TOKEN:
        return DecisionResult.terminal(reason=data.get("reason") or "Provider ended the flow")

    if "actions" in data:
        actions = data["actions"]
        if not isinstance(actions, list):
            raise UnparsableDecision("'actions' is not a list")
        return _from_list(actions)

    return DecisionResult.of([action_from_mapping(data)])


def _json_candidates(text: str) -> list[str]:
    candidates = [text.strip()]
    candidates.extend(m.group(1).strip() for m in _FENCE_RE.finditer(text))
    for pattern in (_OBJECT_RE, _ARRAY_RE):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(0))
    return candidates


def _from_text(text: str) -> DecisionResult:
    if TERMINAL_TOKEN in text:
        return DecisionResult.terminal(reason="Provider ended the flow")

    for candidate in _json_candidates(text):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return _from_mapping(parsed)
        if isinstance(parsed, list):
            return _from_list(parsed)

    raise UnparsableDecision("no JSON decision found in provider output")


def normalize_decision(raw: Any) -> DecisionResult:
    """
    Normalize raw provider output.

    Output that cannot be read as a single action, a batch or a terminal
    signal degrades to a terminal result flagged ``parse_failed`` rather
    than raising, so a misbehaving provider cannot stall a session.

    Args:
        raw: DecisionResult, mapping, list of actions, or text

    Returns:
        Normalized DecisionResult
    """
    try:
        if isinstance(raw, DecisionResult):
            if raw.kind != DecisionKind.TERMINAL and not raw.actions:
                raise UnparsableDecision(f"{raw.kind.value} decision without actions")
            return raw
        if isinstance(raw, dict):
            return _from_mapping(raw)
        if isinstance(raw, list):
            return _from_list(raw)
        if isinstance(raw, str):
            return _from_text(raw)
        raise UnparsableDecision(f"unsupported output type {type(raw).__name__}")
    except UnparsableDecision as e:
        preview = str(raw)[:200]
        logger.warning(f"[DECIDE] Unparsable decision ({e}): {preview}")
        return DecisionResult.terminal(reason=str(e), parse_failed=True)


_DESCRIBED_ACTION_RE = re.compile(
    r'(?P<tool>\w+) (?:to (?P<url>\S+)|on (?P<target>.+?)(?: with (?:text|value) "(?P<value>.*)")?)'
)


def parse_action_description(description: str) -> list[Action]:
    """
    Read a recorded transition label back into actions.

    Labels are ``Action.describe`` one-liners joined with " → ", e.g.
    ``enter_text on #q with text "shoes" → activate on #go``. Entered text
    longer than 20 characters was recorded as a preview and comes back as one.

    Raises:
        UnparsableDecision: A part of the label is not a described action
    """
    actions = []
    for part in description.split(" → "):
        part = part.strip().rstrip(".")
        match = _DESCRIBED_ACTION_RE.fullmatch(part)
        if not match:
            raise UnparsableDecision(f"not an action description: '{part}'")

        kind = TOOL_KINDS.get(match["tool"].lower())
        if kind is None:
            raise UnparsableDecision(f"unknown tool '{match['tool']}'")

        if kind == ActionKind.NAVIGATE:
            if not match["url"]:
                raise UnparsableDecision(f"navigation without url: '{part}'")
            actions.append(Action(kind=kind, url=match["url"]))
            continue

        if not match["target"]:
            raise UnparsableDecision(f"{kind.value} without target: '{part}'")
        action = Action(kind=kind, target=match["target"])
        if kind == ActionKind.ENTER_TEXT:
            action.text = match["value"] or ""
        elif kind == ActionKind.CHOOSE_OPTION:
            action.value = match["value"]
        actions.append(action)

    return actions
