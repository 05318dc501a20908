from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import replace
from itertools import count
from typing import AsyncContextManager, Protocol, runtime_checkable

from .errors import StoreError
from .types import ConnectionRequest, FollowEdge, Notification, RequestState


@runtime_checkable
class RelationshipStore(Protocol):
    """
    Persistence collaborator for connection and follow edges.

    Single-record operations are atomic. Multi-record changes run inside
    `transaction()`, which applies all writes or none of them. Backend
    failures are raised as `StoreError`.
    """

    async def get_connection_request(self, pair_key: str) -> ConnectionRequest | None:
        """Latest connection request of the pair, in any state."""

    async def get_follow_edge(self, follower_id: str, followee_id: str) -> bool:
        """Whether follower_id follows followee_id."""

    async def upsert_connection_request(self, request: ConnectionRequest) -> ConnectionRequest:
        """Insert the request, or update the stored one with the same id."""

    async def set_follow_edge(self, edge: FollowEdge) -> FollowEdge:
        """Create the edge if missing and return the stored edge."""

    async def delete_follow_edge(self, follower_id: str, followee_id: str) -> bool:
        """Delete the edge; False when there was nothing to delete."""

    def transaction(self) -> AsyncContextManager[None]:
        """All-or-nothing scope for the writes issued inside it."""

    async def list_connection_requests(
        self,
        actor_id: str,
        *,
        state: RequestState | None = None,
        direction: str = "any",
    ) -> list[ConnectionRequest]:
        """Requests involving actor_id; direction is "incoming", "outgoing" or "any"."""

    async def list_follow_edges(self, actor_id: str, *, direction: str = "outgoing") -> list[FollowEdge]:
        """Edges from actor_id ("outgoing") or towards it ("incoming")."""

    async def add_notification(self, notification: Notification) -> Notification:
        ...

    async def list_notifications(self, actor_id: str, *, unread_only: bool = False) -> list[Notification]:
        ...

    async def mark_notification_read(self, actor_id: str, notification_id: int) -> bool:
        """Mark one of actor_id's notifications read; False when it has no such notification."""


def _matches_direction(request: ConnectionRequest, actor_id: str, direction: str) -> bool:
    if direction == "incoming":
        return request.recipient_id == actor_id
    if direction == "outgoing":
        return request.requester_id == actor_id
    if direction == "any":
        return actor_id in (request.requester_id, request.recipient_id)
    raise ValueError(f"unknown direction: {direction!r}")


class InMemoryRelationshipStore:
    """Process-local store for tests and single-node development runs."""

    def __init__(self) -> None:
        self._requests: dict[str, ConnectionRequest] = {}
        self._latest: dict[str, str] = {}
        self._follows: dict[tuple[str, str], FollowEdge] = {}
        self._notifications: list[Notification] = []
        self._ids = count(1)
        self._tx_lock = asyncio.Lock()
        self._in_tx: ContextVar[bool] = ContextVar(f"in_memory_tx_{id(self)}", default=False)

    async def get_connection_request(self, pair_key: str) -> ConnectionRequest | None:
        request_id = self._latest.get(pair_key)
        return self._requests.get(request_id) if request_id else None

    async def get_follow_edge(self, follower_id: str, followee_id: str) -> bool:
        return (follower_id, followee_id) in self._follows

    async def upsert_connection_request(self, request: ConnectionRequest) -> ConnectionRequest:
        latest_id = self._latest.get(request.pair_key)
        latest = self._requests.get(latest_id) if latest_id else None
        if request.is_active and latest is not None and latest.is_active and latest.id != request.id:
            # same rule as the uq_connections_active_pair index
            raise StoreError(f"pair {request.pair_key} already has an active connection request")
        self._requests[request.id] = request
        if latest is None or latest.id == request.id or request.created_at >= latest.created_at:
            self._latest[request.pair_key] = request.id
        return request

    async def set_follow_edge(self, edge: FollowEdge) -> FollowEdge:
        return self._follows.setdefault((edge.follower_id, edge.followee_id), edge)

    async def delete_follow_edge(self, follower_id: str, followee_id: str) -> bool:
        return self._follows.pop((follower_id, followee_id), None) is not None

    @asynccontextmanager
    async def transaction(self):
        if self._in_tx.get():
            yield
            return
        async with self._tx_lock:
            # notifications are written outside transactions and are not rolled back
            snapshot = (dict(self._requests), dict(self._latest), dict(self._follows))
            token = self._in_tx.set(True)
            try:
                yield
            except BaseException:
                self._requests, self._latest, self._follows = snapshot
                raise
            finally:
                self._in_tx.reset(token)

    async def list_connection_requests(
        self,
        actor_id: str,
        *,
        state: RequestState | None = None,
        direction: str = "any",
    ) -> list[ConnectionRequest]:
        found = [
            r for r in self._requests.values()
            if _matches_direction(r, actor_id, direction) and (state is None or r.state == state)
        ]
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    async def list_follow_edges(self, actor_id: str, *, direction: str = "outgoing") -> list[FollowEdge]:
        if direction == "outgoing":
            found = [e for e in self._follows.values() if e.follower_id == actor_id]
        elif direction == "incoming":
            found = [e for e in self._follows.values() if e.followee_id == actor_id]
        else:
            raise ValueError(f"unknown direction: {direction!r}")
        return sorted(found, key=lambda e: e.created_at, reverse=True)

    async def add_notification(self, notification: Notification) -> Notification:
        stored = replace(notification, id=next(self._ids))
        self._notifications.append(stored)
        return stored

    async def list_notifications(self, actor_id: str, *, unread_only: bool = False) -> list[Notification]:
        found = [
            n for n in self._notifications
            if n.actor_id == actor_id and not (unread_only and n.read)
        ]
        return sorted(found, key=lambda n: n.created_at, reverse=True)

    async def mark_notification_read(self, actor_id: str, notification_id: int) -> bool:
        for i, n in enumerate(self._notifications):
            if n.id == notification_id and n.actor_id == actor_id:
                self._notifications[i] = replace(n, read=True)
                return True
        return False
