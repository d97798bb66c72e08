"""
Heuristic Decision Provider.
Deterministic first-unexplored-element policy; needs no API key.
"""

import random
import string

from ..core.interfaces import DecisionProvider
from ..core.models import Action, ActionKind, CapabilityHints, DecisionResult
from ..utils.snapshot import element_tag, element_type, extract_action_identifiers


TEXT_INPUT_TYPES = {None, "text", "email", "password", "search", "tel", "url", "number", "date"}


class HeuristicDecisionProvider(DecisionProvider):
    """
    Fills the unexplored text fields of the filtered snapshot with synthetic
    data, then activates the first unexplored clickable element, as one batch.

    Typing alone leaves the snapshot unchanged, so fills always travel with
    the click that submits them. While a modal is open only its elements
    are considered.
    """

    def __init__(self, seed: int = 0):
        self._rng = random.Random(seed)
        self._calls = 0

    @property
    def token_usage(self) -> dict[str, int]:
        return {"calls": self._calls}

    async def decide(
        self,
        snapshot: str,
        history_tail: list[str],
        hints: CapabilityHints,
    ) -> DecisionResult:
        self._calls += 1

        identifiers = extract_action_identifiers(snapshot)
        modal = [i for i in identifiers if i.in_modal]
        if modal:
            identifiers = modal

        fills = []
        clickable = None
        for identifier in identifiers:
            field_type = self._field_type(identifier.line)
            if field_type is not None:
                fills.append(Action(
                    kind=ActionKind.ENTER_TEXT,
                    target=identifier.selector,
                    text=self.generate_synthetic_data(self._data_kind(field_type, identifier.line)),
                ))
            elif clickable is None:
                clickable = Action(kind=ActionKind.ACTIVATE, target=identifier.selector)

        actions = fills + ([clickable] if clickable else [])
        if not actions:
            return DecisionResult.terminal(reason="No unexplored elements left")
        return DecisionResult.of(actions)

    def _field_type(self, line: str) -> str | None:
        """Input type of a text-like field, or None for anything clickable."""
        tag = element_tag(line)
        if tag == "textarea":
            return "text"
        if tag != "input":
            return None

        input_type = element_type(line)
        if input_type not in TEXT_INPUT_TYPES:
            return None
        return input_type or "text"

    def _data_kind(self, field_type: str, line: str) -> str:
        lower = line.lower()
        for kind in ("email", "password", "phone", "name", "address", "city", "zip", "url", "date", "number"):
            if kind == field_type or kind in lower:
                return kind
        return "text"

    def generate_synthetic_data(self, field_type: str) -> str:
        """
        Generate synthetic data for form filling.

        Args:
            field_type: Type of field (email, password, phone, etc.)

        Returns:
            Synthetic data string
        """
        rng = self._rng
        generators = {
            "email": lambda: f"test{rng.randint(100, 999)}@example.com",
            "password": lambda: "TestPass123!",
            "phone": lambda: f"+1555{rng.randint(1000000, 9999999)}",
            "name": lambda: rng.choice(["John Doe", "Jane Smith", "Bob Wilson"]),
            "address": lambda: f"{rng.randint(100, 999)} Main St",
            "city": lambda: rng.choice(["New York", "Los Angeles", "Chicago"]),
            "zip": lambda: f"{rng.randint(10000, 99999)}",
            "text": lambda: "".join(rng.choices(string.ascii_letters, k=10)),
            "number": lambda: str(rng.randint(1, 100)),
            "date": lambda: "2024-01-15",
            "url": lambda: "https://example.com",
        }

        return generators.get(field_type, generators["text"])()
