"""
Shared fakes for pipeline, registry and API tests.

FakeSite models a small web app: pages keyed by locator, each rendered
into the canonical snapshot format, plus edges (locator, selector) → locator.
"""

from typing import Any, Callable

import pytest

from flowmapper.browser.dom import SimplifiedElement, format_snapshot
from flowmapper.core.errors import PerceptionFailure, PersistenceFailure
from flowmapper.core.interfaces import ActionTarget, DecisionProvider, PerceptionSource, PersistenceSink
from flowmapper.core.models import (
    Action,
    ActionKind,
    ApplyResult,
    CapabilityHints,
    DecisionResult,
    Observation,
)
from flowmapper.core.state import create_initial_state
from flowmapper.llm.provider import LLMProvider, LLMRequest, LLMResponse
from flowmapper.memory.session_registry import SessionCollaborators
from flowmapper.stages.batch_executor import ActionBatchExecutor
from flowmapper.stages.controller import ExplorationController
from flowmapper.stages.decide import DecideStage
from flowmapper.stages.execute import ExecuteStage
from flowmapper.stages.observe import ObserveStage
from flowmapper.stages.persist import PersistStage


def button(selector: str, text: str, **kwargs) -> SimplifiedElement:
    return SimplifiedElement(tag="BUTTON", text=text, selector=selector, **kwargs)


def text_input(selector: str, text: str = "", input_type: str = "text", **kwargs) -> SimplifiedElement:
    return SimplifiedElement(tag="INPUT", text=text, selector=selector, type=input_type, **kwargs)


def page(*elements: SimplifiedElement) -> str:
    return format_snapshot(list(elements))


class FakeSite(PerceptionSource, ActionTarget):
    """In-memory web app acting as both perception source and action target."""

    def __init__(
        self,
        pages: dict[str, str],
        edges: dict[tuple[str, str], str] | None = None,
        start: str | None = None,
        failing_targets: set[str] | None = None,
    ):
        self.pages = pages
        self.edges = edges or {}
        self.current = start or next(iter(pages))
        self.failing_targets = failing_targets or set()
        self.observed: list[str | None] = []
        self.applied: list[Action] = []
        self.settle_calls = 0
        self.closed = 0
        self.fail_observe = False

    async def observe(self, locator: str | None = None) -> Observation:
        self.observed.append(locator)
        if self.closed or self.fail_observe:
            raise PerceptionFailure("target unreachable")
        if locator is not None:
            if locator not in self.pages:
                raise PerceptionFailure(f"no page at {locator}")
            self.current = locator
        return Observation(snapshot=self.pages[self.current], locator=self.current)

    async def apply(self, action: Action) -> ApplyResult:
        if action.target in self.failing_targets:
            return ApplyResult(success=False, reason=f"element {action.target} not found")
        self.applied.append(action)
        if action.kind == ActionKind.ACTIVATE:
            self.current = self.edges.get((self.current, action.target), self.current)
        return ApplyResult(success=True)

    async def settle(self) -> None:
        self.settle_calls += 1

    async def close(self) -> None:
        self.closed += 1


class ScriptedProvider(DecisionProvider):
    """Returns scripted outputs in order, then ends the flow."""

    def __init__(self, outputs: list[Any] | None = None, policy: Callable[[str], Any] | None = None):
        self.outputs = list(outputs or [])
        self.policy = policy
        self.calls: list[dict[str, Any]] = []

    async def decide(self, snapshot: str, history_tail: list[str], hints: CapabilityHints):
        self.calls.append({"snapshot": snapshot, "history_tail": list(history_tail), "hints": hints})
        if self.policy is not None:
            return self.policy(snapshot)
        if not self.outputs:
            return "FLOW_END"
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output

    @property
    def token_usage(self) -> dict[str, int]:
        return {"calls": len(self.calls)}


class CannedLLM(LLMProvider):
    """Replies with canned text, the last reply repeating; exception replies are raised."""

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.requests: list[LLMRequest] = []

    async def complete(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=reply, model="canned", prompt_tokens=100, completion_tokens=20)

    @property
    def model_name(self) -> str:
        return "canned"


class MemorySink(PersistenceSink):
    """Keeps every accepted batch; can be told to reject."""

    def __init__(self, fail: bool = False, reject: bool = False):
        self.batches: list[list[Any]] = []
        self.fail = fail
        self.reject = reject
        self.closed = 0

    async def append_batch(self, records) -> bool:
        if self.fail:
            raise PersistenceFailure("disk full")
        if self.reject:
            return False
        self.batches.append(list(records))
        return True

    @property
    def records(self) -> list[Any]:
        return [r for batch in self.batches for r in batch]

    async def close(self) -> None:
        self.closed += 1


def click(selector: str) -> dict[str, str]:
    return {"tool": "clickElement", "selector": selector}


def build_controller(
    site: FakeSite,
    provider: DecisionProvider,
    sink: PersistenceSink | None = None,
    max_iterations: int = 20,
    terminate_on_cycle: bool = True,
    credentials=None,
    on_event=None,
) -> ExplorationController:
    return ExplorationController(
        observe=ObserveStage(site, terminate_on_cycle=terminate_on_cycle),
        decide=DecideStage(provider, credentials=credentials),
        execute=ExecuteStage(ActionBatchExecutor(site, settle_delay=0)),
        persist=PersistStage(sink or MemorySink()),
        max_iterations=max_iterations,
        on_event=on_event,
    )


@pytest.fixture
def new_state():
    def _make(target: str = "http://app/", session_id: str = "session-0001"):
        return create_initial_state(session_id, target)
    return _make


@pytest.fixture
def two_page_site() -> FakeSite:
    """X has a1 and a2; a1 leads to Y, a2 on Y leads back to X."""
    pages = {
        "http://app/": page(button("#a1", "Go to Y"), button("#a2", "Stay")),
        "http://app/y": page(button("#back", "Back to X")),
    }
    edges = {
        ("http://app/", "#a1"): "http://app/y",
        ("http://app/y", "#back"): "http://app/",
    }
    return FakeSite(pages, edges, start="http://app/")


@pytest.fixture
def collaborators_factory():
    """Factory building a fresh single-page site per session."""
    created: list[SessionCollaborators] = []

    async def factory(config) -> SessionCollaborators:
        site = FakeSite({config.target_url: page(button("#only", "Only"))})
        provider = ScriptedProvider(["FLOW_END"])
        collaborators = SessionCollaborators(
            perception=site,
            target=site,
            decision_provider=provider,
            sink=MemorySink(),
        )
        created.append(collaborators)
        return collaborators

    factory.created = created
    return factory


def decision(*actions: Action) -> DecisionResult:
    return DecisionResult.of(list(actions))
