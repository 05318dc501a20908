import asyncio

import pytest

from medlink.relationship import (
    ActionIntent,
    AlreadyInProgress,
    EventKind,
    FollowEdge,
    Forbidden,
    InMemoryRelationshipStore,
    InvalidArgument,
    RelationshipStatus,
    RequestState,
    StateConflict,
    StoreError,
    StoreUnavailable,
    build_engine,
    pair_key,
)


class GatedStore(InMemoryRelationshipStore):
    """Holds connection writes until the test opens the gate."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def upsert_connection_request(self, request):
        self.entered.set()
        await self.gate.wait()
        return await super().upsert_connection_request(request)


class FailingDeleteStore(InMemoryRelationshipStore):
    async def delete_follow_edge(self, follower_id, followee_id):
        raise StoreError("write timeout")


async def test_connect_then_accept(engine, events, alice, bob):
    assert await engine.act(alice, bob, "connect") is RelationshipStatus.PENDING_OUTGOING
    assert await engine.status(bob, alice) is RelationshipStatus.PENDING_INCOMING

    assert await engine.act(bob, alice, ActionIntent.ACCEPT) is RelationshipStatus.CONNECTED
    assert await engine.status(alice, bob) is RelationshipStatus.CONNECTED
    assert await engine.status(bob, alice) is RelationshipStatus.CONNECTED

    assert [e.kind for e in events] == [
        EventKind.CONNECTION_REQUEST_SENT,
        EventKind.CONNECTION_ACCEPTED,
    ]
    accepted = events[1]
    assert accepted.viewer_id == "bob"
    assert accepted.target_id == "alice"
    assert accepted.new_status is RelationshipStatus.CONNECTED


async def test_accept_records_response_time(engine, store, alice, bob):
    await engine.act(alice, bob, "connect")
    await engine.act(bob, alice, "accept")

    request = await store.get_connection_request(pair_key("alice", "bob"))
    assert request.state is RequestState.ACCEPTED
    assert request.responded_at is not None


async def test_cancel_without_pending_request_conflicts(engine, events, alice, bob):
    with pytest.raises(StateConflict):
        await engine.act(alice, bob, "cancel")
    assert events == []


async def test_requester_cannot_accept_own_request(engine, alice, bob):
    await engine.act(alice, bob, "connect")
    with pytest.raises(StateConflict):
        await engine.act(alice, bob, "accept")


async def test_cancel_keeps_follow_edge(engine, events, alice, bob):
    await engine.act(alice, bob, "follow")
    await engine.act(alice, bob, "connect")

    assert await engine.act(alice, bob, "cancel") is RelationshipStatus.FOLLOWING
    assert events[-1].kind is EventKind.FOLLOW_STATUS_UPDATED


async def test_reject_then_connect_again(engine, store, events, alice, bob):
    await engine.act(alice, bob, "connect")
    assert await engine.act(bob, alice, "reject") is RelationshipStatus.NONE
    assert events[-1].kind is EventKind.CONNECTION_REJECTED

    assert await engine.act(alice, bob, "connect") is RelationshipStatus.PENDING_OUTGOING
    history = await store.list_connection_requests("alice")
    assert sorted(r.state.value for r in history) == ["pending", "rejected"]


async def test_self_action_is_invalid(engine, alice):
    with pytest.raises(InvalidArgument):
        await engine.act(alice, alice, "follow")


async def test_institution_cannot_connect(engine, events, clinic, alice):
    with pytest.raises(Forbidden):
        await engine.act(clinic, alice, "connect")
    assert events == []
    assert await engine.status(clinic, alice) is RelationshipStatus.NONE


async def test_institution_follow_flow(engine, events, clinic, alice):
    status, button = await engine.button(clinic, alice)
    assert status is RelationshipStatus.BLOCKED_ACTION
    assert button.enabled is False

    assert await engine.act(clinic, alice, "follow") is RelationshipStatus.FOLLOWING
    assert await engine.status(clinic, alice) is RelationshipStatus.FOLLOWING
    assert events[-1].kind is EventKind.FOLLOW_STATUS_UPDATED

    assert await engine.act(clinic, alice, "unfollow") is RelationshipStatus.NONE
    assert await engine.status(clinic, alice) is RelationshipStatus.NONE


async def test_unfollow_is_idempotent(engine, events, alice, bob):
    assert await engine.act(alice, bob, "unfollow") is RelationshipStatus.NONE
    assert await engine.act(alice, bob, "unfollow") is RelationshipStatus.NONE
    assert len(events) == 2


async def test_follow_twice_keeps_one_edge(engine, store, alice, bob):
    await engine.act(alice, bob, "follow")
    await engine.act(alice, bob, "follow")

    assert len(await store.list_follow_edges("alice")) == 1


async def test_accept_removes_follow_edges(engine, store, alice, bob):
    await store.set_follow_edge(FollowEdge("alice", "bob"))
    await store.set_follow_edge(FollowEdge("bob", "alice"))

    await engine.act(alice, bob, "connect")
    await engine.act(bob, alice, "accept")

    assert not await store.get_follow_edge("alice", "bob")
    assert not await store.get_follow_edge("bob", "alice")


async def test_concurrent_accepts_run_once(bus, events, alice, bob):
    store = GatedStore()
    engine = build_engine(store, bus=bus)
    store.gate.set()
    await engine.act(alice, bob, "connect")
    store.entered.clear()
    store.gate.clear()

    first = asyncio.create_task(engine.act(bob, alice, "accept"))
    await store.entered.wait()

    with pytest.raises(AlreadyInProgress):
        await engine.act(bob, alice, "accept")
    with pytest.raises(AlreadyInProgress):
        await engine.act(alice, bob, "cancel")

    _, button = await engine.button(bob, alice)
    assert button.enabled is False

    store.gate.set()
    assert await first is RelationshipStatus.CONNECTED

    accepted = [e for e in events if e.kind is EventKind.CONNECTION_ACCEPTED]
    assert len(accepted) == 1

    with pytest.raises(StateConflict):
        await engine.act(bob, alice, "accept")


async def test_abandoned_caller_still_completes(bus, alice, bob):
    store = GatedStore()
    engine = build_engine(store, bus=bus)
    published = asyncio.Event()
    bus.subscribe(EventKind.CONNECTION_REQUEST_SENT, lambda event: published.set())

    caller = asyncio.create_task(engine.act(alice, bob, "connect"))
    await store.entered.wait()
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    store.gate.set()
    await asyncio.wait_for(published.wait(), timeout=1)

    for _ in range(100):
        if not await engine.executor.is_in_flight(alice, bob):
            break
        await asyncio.sleep(0.01)
    else:
        pytest.fail("guard was never released")

    assert await engine.status(alice, bob) is RelationshipStatus.PENDING_OUTGOING


async def test_store_failure_rolls_back_and_releases_guard(bus, events, alice, bob):
    store = FailingDeleteStore()
    engine = build_engine(store, bus=bus)
    await engine.act(alice, bob, "connect")

    with pytest.raises(StoreUnavailable):
        await engine.act(bob, alice, "accept")

    assert await engine.status(bob, alice) is RelationshipStatus.PENDING_INCOMING
    assert not await engine.executor.is_in_flight(bob, alice)
    assert [e.kind for e in events] == [EventKind.CONNECTION_REQUEST_SENT]


async def test_unknown_intent_raises(engine, alice, bob):
    with pytest.raises(ValueError):
        await engine.act(alice, bob, "poke")


async def test_reverse_connect_while_pending_conflicts(engine, store, alice, bob):
    await engine.act(alice, bob, "connect")

    with pytest.raises(StateConflict):
        await engine.act(bob, alice, "connect")
    assert len(await store.list_connection_requests("bob")) == 1


async def test_reverse_connect_while_connected_conflicts(engine, alice, bob):
    await engine.act(alice, bob, "connect")
    await engine.act(bob, alice, "accept")

    with pytest.raises(StateConflict):
        await engine.act(bob, alice, "connect")
    with pytest.raises(StateConflict):
        await engine.act(alice, bob, "connect")
