import fakeredis.aioredis
import pytest
from redis.exceptions import ConnectionError

from medlink.relationship import (
    AlreadyInProgress,
    InMemoryRelationshipStore,
    RelationshipStatus,
    StoreUnavailable,
    build_engine,
)
from medlink.utils.concurrency import GuardUnavailable, RedisSingleFlight, SingleFlight


@pytest.fixture
def redis_client():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


async def test_single_flight_rejects_second_holder():
    guard = SingleFlight()

    assert await guard.acquire("a:b")
    assert not await guard.acquire("a:b")
    assert await guard.acquire("a:c")
    assert await guard.is_held("a:b")

    await guard.release("a:b")
    assert not await guard.is_held("a:b")
    assert await guard.acquire("a:b")


async def test_redis_guard_acquire_release(redis_client):
    guard = RedisSingleFlight(redis_client, ttl=30, prefix="lock:test")

    assert await guard.acquire("a:b")
    assert await redis_client.exists("lock:test:a:b")
    assert await guard.is_held("a:b")

    await guard.release("a:b")
    assert not await redis_client.exists("lock:test:a:b")


async def test_redis_guard_is_shared_between_workers(redis_client):
    one = RedisSingleFlight(redis_client, prefix="lock:test")
    two = RedisSingleFlight(redis_client, prefix="lock:test")

    assert await one.acquire("a:b")
    assert not await two.acquire("a:b")

    # a worker that never held the lock cannot free it
    await two.release("a:b")
    assert await two.is_held("a:b")

    await one.release("a:b")
    assert await two.acquire("a:b")


async def test_redis_guard_does_not_delete_newer_lock(redis_client):
    guard = RedisSingleFlight(redis_client, prefix="lock:test")
    await guard.acquire("a:b")
    await redis_client.set("lock:test:a:b", "someone-else")

    await guard.release("a:b")

    assert await redis_client.get("lock:test:a:b") == "someone-else"


async def test_redis_guard_sets_ttl(redis_client):
    guard = RedisSingleFlight(redis_client, ttl=7, prefix="lock:test")
    await guard.acquire("a:b")

    assert 0 < await redis_client.ttl("lock:test:a:b") <= 7


async def test_redis_failure_becomes_guard_unavailable(redis_client):
    class DownRedis:
        async def set(self, *args, **kwargs):
            raise ConnectionError("connection refused")

    guard = RedisSingleFlight(DownRedis())
    with pytest.raises(GuardUnavailable):
        await guard.acquire("a:b")


async def test_engine_with_redis_guard(redis_client, alice, bob):
    guard = RedisSingleFlight(redis_client, prefix="lock:test")
    engine = build_engine(InMemoryRelationshipStore(), guard=guard)

    assert await engine.act(alice, bob, "follow") is RelationshipStatus.FOLLOWING
    assert not await guard.is_held("alice:bob")

    # another worker holds the pair
    await redis_client.set("lock:test:alice:bob", "other-worker")
    with pytest.raises(AlreadyInProgress):
        await engine.act(alice, bob, "unfollow")

    _, button = await engine.button(alice, bob)
    assert button.label == "Loading..."


async def test_engine_maps_guard_outage_to_store_unavailable(alice, bob):
    class DownRedis:
        async def set(self, *args, **kwargs):
            raise ConnectionError("connection refused")

    engine = build_engine(InMemoryRelationshipStore(), guard=RedisSingleFlight(DownRedis()))
    with pytest.raises(StoreUnavailable):
        await engine.act(alice, bob, "follow")
