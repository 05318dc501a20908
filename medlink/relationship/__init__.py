"""
Relationship engine for individual professionals and institutions.

This module provides:
- Status resolution for a (viewer, target) pair (connected, pending, following...)
- The connect/follow button descriptor for a status
- Single-flight execution of connect/cancel/accept/reject/follow/unfollow
- An in-process bus announcing relationship changes so views can re-resolve

Main entry point is `build_engine` in engine.py.
"""

from .types import (
    Actor,
    ActorType,
    ActionIntent,
    ConnectionRequest,
    EventKind,
    FollowEdge,
    Notification,
    RelationshipEvent,
    RelationshipStatus,
    RequestState,
    pair_key,
)
from .errors import (
    RelationshipError,
    InvalidArgument,
    Forbidden,
    StateConflict,
    AlreadyInProgress,
    StoreUnavailable,
    StoreError,
)
from .store import RelationshipStore, InMemoryRelationshipStore
from .resolver import RelationshipStatusResolver
from .presenter import ButtonDescriptor, Icon, present
from .bus import ChangeNotificationBus
from .executor import RelationshipActionExecutor
from .engine import RelationshipEngine, build_engine

__all__ = [
    # Value types
    "Actor",
    "ActorType",
    "ActionIntent",
    "ConnectionRequest",
    "EventKind",
    "FollowEdge",
    "Notification",
    "RelationshipEvent",
    "RelationshipStatus",
    "RequestState",
    "pair_key",

    # Errors
    "RelationshipError",
    "InvalidArgument",
    "Forbidden",
    "StateConflict",
    "AlreadyInProgress",
    "StoreUnavailable",
    "StoreError",

    # Core components
    "RelationshipStore",
    "InMemoryRelationshipStore",
    "RelationshipStatusResolver",
    "ButtonDescriptor",
    "Icon",
    "present",
    "ChangeNotificationBus",
    "RelationshipActionExecutor",
    "RelationshipEngine",
    "build_engine",
]
