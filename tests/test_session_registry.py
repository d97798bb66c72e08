"""Session registry: lifecycle, concurrency and stop semantics."""

import asyncio

import pytest

from conftest import FakeSite, MemorySink, ScriptedProvider, button, page
from flowmapper.core.errors import SessionNotFound
from flowmapper.core.models import ExplorationStatus, SessionStatus
from flowmapper.memory.session_registry import SessionCollaborators, SessionRegistry


@pytest.fixture
def registry(collaborators_factory, tmp_path):
    return SessionRegistry(
        collaborators_factory,
        database_path=str(tmp_path / "graph.db"),
        settle_delay=0,
    )


class GatedProvider(ScriptedProvider):
    """Blocks in decide until released."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def decide(self, snapshot, history_tail, hints):
        self.entered.set()
        await self.gate.wait()
        return {"tool": "clickElement", "selector": "#only"}


async def test_session_runs_to_completion_and_releases_resources(registry, collaborators_factory):
    session_id = await registry.start("http://app/")
    state = await registry.wait(session_id)

    assert state.status == ExplorationStatus.FLOW_END

    detail = await registry.status(session_id)
    assert detail["status"] == SessionStatus.COMPLETED.value
    assert detail["exploration_status"] == "FLOW_END"
    assert detail["action_history"][0].startswith("[OBSERVE] Visited http://app/.")
    assert detail["termination_reason"] == "Provider ended the flow"

    collaborators = collaborators_factory.created[0]
    assert collaborators.perception.closed == 1
    assert collaborators.sink.closed == 1


async def test_explicit_iteration_limit_is_respected(registry, collaborators_factory):
    session_id = await registry.start("http://app/", max_iterations=0)
    state = await registry.wait(session_id)

    assert state.iteration == 0
    assert state.termination_reason == "Iteration cap reached"
    assert collaborators_factory.created[0].perception.observed == []


async def test_completed_sessions_stay_listed_until_stopped(registry):
    session_id = await registry.start("http://app/")
    await registry.wait(session_id)

    assert [s.session_id for s in await registry.list()] == [session_id]

    ack = await registry.stop(session_id)

    assert ack == {"session_id": session_id, "stopped": True}
    assert await registry.list() == []


async def test_unknown_and_stopped_sessions_raise(registry):
    with pytest.raises(SessionNotFound):
        await registry.status("nope")
    with pytest.raises(SessionNotFound):
        await registry.stop("nope")

    session_id = await registry.start("http://app/")
    await registry.wait(session_id)
    await registry.stop(session_id)

    with pytest.raises(SessionNotFound):
        await registry.stop(session_id)
    with pytest.raises(SessionNotFound):
        await registry.status(session_id)


async def test_concurrent_starts_get_distinct_sessions(registry):
    ids = await asyncio.gather(*(registry.start(f"http://app/{i}") for i in range(8)))

    assert len(set(ids)) == 8
    listed = {s.session_id for s in await registry.list()}
    assert listed == set(ids)

    await asyncio.gather(*(registry.wait(i) for i in ids))
    await asyncio.gather(*(registry.stop(i) for i in ids))
    assert await registry.list() == []


async def test_stop_releases_resources_without_cancelling(tmp_path):
    site = FakeSite({"http://app/": page(button("#only", "Only"))})
    provider = GatedProvider()
    sink = MemorySink()

    async def factory(config):
        return SessionCollaborators(perception=site, target=site, decision_provider=provider, sink=sink)

    registry = SessionRegistry(factory, database_path=str(tmp_path / "graph.db"), settle_delay=0)
    session_id = await registry.start("http://app/")
    await provider.entered.wait()

    task = registry._sessions[session_id].task
    session = registry._sessions[session_id]
    await registry.stop(session_id)

    assert site.closed == 1
    assert sink.closed == 1
    assert not task.done()

    provider.gate.set()
    await task

    assert not task.cancelled()
    assert session.state.status == ExplorationStatus.FAILURE
    assert session.state.termination_reason == "Stopped by request"
    assert site.applied == []


async def test_events_are_forwarded_with_session_id(collaborators_factory, tmp_path):
    events = []

    async def on_event(session_id, event, data):
        events.append((session_id, event))

    registry = SessionRegistry(
        collaborators_factory,
        on_event=on_event,
        database_path=str(tmp_path / "graph.db"),
        settle_delay=0,
    )
    session_id = await registry.start("http://app/")
    await registry.wait(session_id)

    assert (session_id, "session_started") in events
    assert events[-1] == (session_id, "session_finished")


async def test_shutdown_stops_everything(registry):
    ids = [await registry.start(f"http://app/{i}") for i in range(3)]

    await registry.shutdown()

    assert await registry.list() == []
    for session_id in ids:
        with pytest.raises(SessionNotFound):
            await registry.status(session_id)
