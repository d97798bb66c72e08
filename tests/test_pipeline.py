"""Exploration pipeline: end-to-end runs of the controller over a fake site."""

import pytest

from conftest import (
    FakeSite,
    MemorySink,
    ScriptedProvider,
    build_controller,
    button,
    click,
    page,
    text_input,
)
from flowmapper.core.models import (
    ActionKind,
    Credentials,
    ExplorationStatus,
    StateRecord,
    TransitionRecord,
)
from flowmapper.decision.heuristic import HeuristicDecisionProvider
from flowmapper.stages.controller import apply_update
from flowmapper.utils.hashing import compute_fingerprint


# ==============================================================================
# Scenarios
# ==============================================================================

async def test_empty_first_page_ends_after_one_iteration(new_state):
    site = FakeSite({"http://app/": page()})
    sink = MemorySink()
    provider = ScriptedProvider()
    state = new_state()

    await build_controller(site, provider, sink).run(state)

    assert state.status == ExplorationStatus.FLOW_END
    assert state.iteration == 1
    assert state.iteration_statuses == [ExplorationStatus.FLOW_END]
    assert len(state.action_history) == 1
    assert state.action_history[0].startswith("[OBSERVE] Visited http://app/. Found 0 actionable elements.")
    assert provider.calls == []
    assert [type(r) for r in sink.records] == [StateRecord]


async def test_return_to_start_state_is_a_cycle(new_state, two_page_site):
    provider = ScriptedProvider([click("#a1"), click("#back")])
    sink = MemorySink()
    state = new_state()

    await build_controller(two_page_site, provider, sink).run(state)

    assert state.iteration_statuses == [
        ExplorationStatus.CONTINUE,
        ExplorationStatus.CONTINUE,
        ExplorationStatus.FLOW_END,
    ]
    assert state.termination_reason == "Cycle detected"
    assert "[CYCLE DETECTED" in state.action_history[-1]
    assert [a.target for a in two_page_site.applied] == ["#a1", "#back"]

    transitions = [r for r in sink.records if isinstance(r, TransitionRecord)]
    x = compute_fingerprint(two_page_site.pages["http://app/"])
    y = compute_fingerprint(two_page_site.pages["http://app/y"])
    assert [(t.from_fingerprint, t.to_fingerprint) for t in transitions] == [(x, y), (y, x)]


async def test_unparsable_provider_output_ends_flow(new_state, two_page_site):
    provider = ScriptedProvider(["I would probably click the nicest looking button."])
    state = new_state()

    await build_controller(two_page_site, provider).run(state)

    assert state.status == ExplorationStatus.FLOW_END
    assert any(e.startswith("[DECIDE] Could not parse provider output") for e in state.action_history)
    assert two_page_site.applied == []
    assert state.pending_actions == []


async def test_backtrack_resumes_at_state_with_unexplored_actions(new_state):
    pages = {
        "http://app/": page(button("#a1", "Deeper"), button("#a2", "Other")),
        "http://app/y": page(button("#b1", "Dead end")),
        "http://app/z": page(),
    }
    edges = {
        ("http://app/", "#a1"): "http://app/y",
        ("http://app/y", "#b1"): "http://app/z",
    }
    site = FakeSite(pages, edges)
    provider = ScriptedProvider([click("#a1"), click("#b1"), "FLOW_END"])
    state = new_state()

    await build_controller(site, provider).run(state)

    x = compute_fingerprint(pages["http://app/"])
    assert state.iteration_statuses[:3] == [
        ExplorationStatus.CONTINUE,
        ExplorationStatus.CONTINUE,
        ExplorationStatus.BACKTRACK,
    ]
    # The observation after the backtrack happens against X's locator
    assert site.observed[3] == "http://app/"
    assert any(e.startswith("[BACKTRACK] Resuming at http://app/ (1 unexplored actions)") for e in state.action_history)
    assert state.current_fingerprint == x
    # The provider only saw X's remaining action
    last_snapshot = provider.calls[-1]["snapshot"]
    assert "#a2" in last_snapshot
    assert "#a1" not in last_snapshot


async def test_heuristic_fills_form_then_reaches_later_links(new_state):
    pages = {
        "http://app/": page(text_input("#q", "Search"), button("#go", "Search"), button("#about", "About")),
        "http://app/results": page(button("#next", "Next page", disabled=True)),
        "http://app/about": page(button("#team", "Team", disabled=True)),
    }
    edges = {
        ("http://app/", "#go"): "http://app/results",
        ("http://app/", "#about"): "http://app/about",
    }
    site = FakeSite(pages, edges)
    state = new_state()

    await build_controller(site, HeuristicDecisionProvider()).run(state)

    assert [(a.kind, a.target) for a in site.applied] == [
        (ActionKind.ENTER_TEXT, "#q"),
        (ActionKind.ACTIVATE, "#go"),
        (ActionKind.ACTIVATE, "#about"),
    ]
    assert site.current == "http://app/about"
    assert state.status == ExplorationStatus.FLOW_END
    assert state.termination_reason == "No unexplored actions left"


# ==============================================================================
# Failure semantics
# ==============================================================================

async def test_failed_action_skips_rest_and_still_persists(new_state):
    pages = {"http://app/": page(text_input("#q", "Search"), button("#missing", "Ghost"), button("#go", "Go"))}
    site = FakeSite(pages, failing_targets={"#missing"})
    sink = MemorySink()
    provider = ScriptedProvider([{"actions": [
        {"tool": "typeText", "selector": "#q", "text": "shoes"},
        click("#missing"),
        click("#go"),
    ]}])
    state = new_state()

    await build_controller(site, provider, sink).run(state)

    assert state.status == ExplorationStatus.FAILURE
    assert state.iteration_statuses == [ExplorationStatus.FAILURE]
    assert [a.target for a in site.applied] == ["#q"]

    entry = state.action_history[-1]
    assert entry.startswith("[EXECUTE] Batch failed at http://app/;")
    assert "failed: activate on #missing (element #missing not found)" in entry
    assert "skipped: activate on #go" in entry

    failed = [r for r in sink.records if isinstance(r, TransitionRecord)]
    assert len(failed) == 1
    assert failed[0].success is False
    assert failed[0].to_fingerprint is None

    # Attempted actions count as explored, the skipped one does not
    record = state.frontier[state.current_fingerprint]
    assert record.explored_actions == ["#q|||Search", "#missing|||Ghost"]


async def test_perception_failure_fails_session(new_state, two_page_site):
    two_page_site.fail_observe = True
    state = new_state()

    await build_controller(two_page_site, ScriptedProvider()).run(state)

    assert state.status == ExplorationStatus.FAILURE
    assert state.action_history == ["[OBSERVE] Error: target unreachable"]


async def test_provider_exception_fails_session(new_state, two_page_site):
    provider = ScriptedProvider([RuntimeError("rate limited")])
    state = new_state()

    await build_controller(two_page_site, provider).run(state)

    assert state.status == ExplorationStatus.FAILURE
    assert state.action_history[-1] == "[DECIDE] Error: rate limited"
    assert two_page_site.applied == []


async def test_persistence_failure_is_noted_and_exploration_continues(new_state, two_page_site):
    sink = MemorySink(fail=True)
    provider = ScriptedProvider([click("#a1"), "FLOW_END"])
    state = new_state()

    await build_controller(two_page_site, provider, sink).run(state)

    assert state.status == ExplorationStatus.FLOW_END
    assert state.iteration == 2
    assert "[PERSIST] Error: disk full" in state.action_history
    assert state.pending_records == []


async def test_iteration_cap_flushes_open_transition(new_state):
    pages = {f"http://app/{i}": page(button("#next", f"Page {i}")) for i in range(5)}
    edges = {(f"http://app/{i}", "#next"): f"http://app/{i + 1}" for i in range(4)}
    site = FakeSite(pages, edges, start="http://app/0")
    sink = MemorySink()
    provider = ScriptedProvider(policy=lambda snapshot: click("#next"))
    state = new_state("http://app/0")

    await build_controller(site, provider, sink, max_iterations=2).run(state)

    assert state.status == ExplorationStatus.FLOW_END
    assert state.iteration == 2
    assert state.action_history[-1] == "[CONTROLLER] Iteration cap (2) reached."
    last = sink.records[-1]
    assert isinstance(last, TransitionRecord)
    assert last.to_fingerprint is None
    assert last.success is True


async def test_cycle_backtracks_when_termination_disabled(new_state, two_page_site):
    provider = ScriptedProvider([click("#a1"), click("#back"), "FLOW_END"])
    state = new_state()

    await build_controller(two_page_site, provider, terminate_on_cycle=False).run(state)

    assert state.iteration_statuses[2] == ExplorationStatus.BACKTRACK
    assert two_page_site.observed[3] == "http://app/"
    assert state.status == ExplorationStatus.FLOW_END


async def test_stop_request_is_honored_at_next_stage_boundary(new_state, two_page_site):
    state = new_state()
    controller = None

    async def on_event(event, data):
        if event == "stage_finished" and data["stage"] == "observe":
            controller.request_stop()

    controller = build_controller(two_page_site, ScriptedProvider([click("#a1")]), on_event=on_event)
    await controller.run(state)

    assert state.status == ExplorationStatus.FAILURE
    assert state.termination_reason == "Stopped by request"
    assert two_page_site.applied == []


async def test_event_callback_errors_do_not_break_the_run(new_state):
    site = FakeSite({"http://app/": page()})
    events = []

    async def on_event(event, data):
        events.append(event)
        raise RuntimeError("subscriber went away")

    state = new_state()
    await build_controller(site, ScriptedProvider(), on_event=on_event).run(state)

    assert state.status == ExplorationStatus.FLOW_END
    assert events[0] == "session_started"
    assert events[-1] == "session_finished"
    assert "status_changed" in events


# ==============================================================================
# Login shortcut
# ==============================================================================

async def test_login_form_is_filled_without_asking_the_provider(new_state):
    pages = {
        "http://app/login": page(
            text_input("#username"),
            text_input("#password", input_type="password"),
            button("#login", "Sign in", type="submit"),
        ),
        "http://app/home": page(button("#logout", "Log out")),
    }
    site = FakeSite(pages, {("http://app/login", "#login"): "http://app/home"})
    provider = ScriptedProvider(["FLOW_END"])
    state = new_state("http://app/login")

    await build_controller(
        site, provider, credentials=Credentials(username="alice", password="s3cret"),
    ).run(state)

    assert [(a.kind, a.target, a.text) for a in site.applied] == [
        (ActionKind.ENTER_TEXT, "#username", "alice"),
        (ActionKind.ENTER_TEXT, "#password", "s3cret"),
        (ActionKind.ACTIVATE, "#login", None),
    ]
    assert "[DECIDE] Auto-login: batch prepared (fill username, fill password, submit)" in state.action_history
    assert state.login_successful is True
    assert len(provider.calls) == 1
    assert provider.calls[0]["hints"].credentials is None


# ==============================================================================
# Reducer
# ==============================================================================

def test_reducer_rejects_unknown_keys(new_state):
    state = new_state()

    with pytest.raises(ValueError):
        apply_update(state, {"action_history": ["x"], "bogus": 1})

    # Nothing was applied
    assert state.action_history == []


def test_reducer_refuses_to_replace_frontier(new_state):
    with pytest.raises(ValueError):
        apply_update(new_state(), {"frontier": {}})


def test_reducer_appends_and_deduplicates(new_state):
    state = new_state()

    apply_update(state, {"action_history": ["a"], "login_attempted": ["/login"]})
    apply_update(state, {"action_history": ["b"], "login_attempted": ["/login", "/admin"]})

    assert state.action_history == ["a", "b"]
    assert state.login_attempted == ["/login", "/admin"]


def test_reducer_applies_frontier_channels_in_order(new_state):
    state = new_state()
    state.current_fingerprint = "fp-x"

    apply_update(state, {
        "frontier_observation": {"fingerprint": "fp-x", "locator": "/", "actions": ["a", "b"]},
        "explored_actions": {"fingerprint": "fp-x", "actions": ["a"]},
        "backtrack_pushes": ["fp-x"],
    })

    assert state.frontier["fp-x"].explored_actions == ["a"]
    assert state.unexplored_actions == ["b"]
    assert [t.fingerprint for t in state.backtrack_stack] == ["fp-x"]
    assert state.backtrack_stack[0].unexplored_count == 1
