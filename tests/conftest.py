import pytest

from medlink.relationship import (
    Actor,
    ActorType,
    ChangeNotificationBus,
    InMemoryRelationshipStore,
    build_engine,
)


@pytest.fixture
def alice():
    return Actor("alice")


@pytest.fixture
def bob():
    return Actor("bob")


@pytest.fixture
def clinic():
    return Actor("clinic", ActorType.INSTITUTION)


@pytest.fixture
def store():
    return InMemoryRelationshipStore()


@pytest.fixture
def bus():
    return ChangeNotificationBus()


@pytest.fixture
def engine(store, bus):
    return build_engine(store, bus=bus)


@pytest.fixture
def events(bus):
    """Every event published on the bus, in order."""
    seen = []
    bus.subscribe_all(seen.append)
    return seen
