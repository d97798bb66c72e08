"""SQLite persistence sink: atomic batches, counting upserts and graph reads."""

import pytest

from flowmapper.core.errors import PersistenceFailure
from flowmapper.core.models import StateRecord, TransitionRecord
from flowmapper.memory.fsm_store import FSMStore


@pytest.fixture
async def store(tmp_path):
    store = FSMStore(str(tmp_path / "data" / "fsm.db"))
    await store.initialize()
    yield store
    await store.close()


def state(fp: str, locator: str = "/", session_id: str = "s1") -> StateRecord:
    return StateRecord(session_id=session_id, fingerprint=fp, locator=locator, action_count=2)


def transition(src: str, dst: str | None, description: str = "activate on #a", **kwargs) -> TransitionRecord:
    return TransitionRecord(
        session_id="s1",
        from_fingerprint=src,
        from_locator=f"/{src}",
        to_fingerprint=dst,
        to_locator=f"/{dst}" if dst else None,
        description=description,
        first_target="#a",
        **kwargs,
    )


async def test_states_and_transitions_round_trip_into_graph(store):
    await store.append_batch([state("x", "/x")])
    await store.append_batch([state("y", "/y"), transition("x", "y")])

    graph = await store.get_fsm_graph("s1")

    assert [n["id"] for n in graph["nodes"]] == ["x", "y"]
    assert graph["edges"] == [{
        "from": "x",
        "to": "y",
        "action": "activate on #a",
        "target": "#a",
        "success": True,
        "traversals": 1,
    }]


async def test_revisits_and_repeated_transitions_are_counted(store):
    await store.append_batch([state("x"), state("y"), transition("x", "y")])
    await store.append_batch([state("x"), transition("x", "y")])

    graph = await store.get_fsm_graph("s1")
    visits = {n["id"]: n["visits"] for n in graph["nodes"]}

    assert visits == {"x": 2, "y": 1}
    assert len(graph["edges"]) == 1
    assert graph["edges"][0]["traversals"] == 2


async def test_transition_endpoints_are_always_recorded(store):
    # The source state's own batch was lost earlier
    await store.append_batch([transition("lost", None, success=False)])

    graph = await store.get_fsm_graph("s1")

    assert [n["id"] for n in graph["nodes"]] == ["lost"]
    assert graph["edges"][0]["to"] is None
    assert graph["edges"][0]["success"] is False


async def test_failed_batch_is_rolled_back(store):
    # A non-bindable parameter makes the last write fail after the states succeeded
    bad_transition = transition("x", "y")
    object.__setattr__(bad_transition, "description", object())

    with pytest.raises(PersistenceFailure):
        await store.append_batch([state("x"), state("y"), bad_transition])

    assert await store.count_states("s1") == 0


async def test_values_are_bound_not_interpolated(store):
    sneaky = "x'); DROP TABLE page_states; --"

    await store.append_batch([state(sneaky, locator="/it's")])

    nodes = (await store.get_fsm_graph("s1"))["nodes"]
    assert nodes[0]["id"] == sneaky
    assert nodes[0]["url"] == "/it's"


async def test_sessions_are_isolated(store):
    await store.append_batch([state("x", session_id="s1"), state("x", session_id="s2")])

    assert await store.count_states("s1") == 1
    assert await store.count_states("s2") == 1


async def test_closed_store_rejects_batches(tmp_path):
    store = FSMStore(str(tmp_path / "fsm.db"))
    await store.initialize()
    await store.close()

    with pytest.raises(PersistenceFailure):
        await store.append_batch([state("x")])
