import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medlink.db.models import ActorNotification, Connection, Follow

from .errors import StoreError
from .types import ConnectionRequest, FollowEdge, Notification, RequestState

log = logging.getLogger(__name__)

_current_session: ContextVar[AsyncSession | None] = ContextVar("medlink_store_session", default=None)


def _to_request(row: Connection) -> ConnectionRequest:
    try:
        return ConnectionRequest(
            id=row.id,
            requester_id=row.requester_id,
            recipient_id=row.recipient_id,
            state=row.state,
            requester_type=row.requester_type,
            recipient_type=row.recipient_type,
            created_at=row.created_at,
            responded_at=row.responded_at,
        )
    except ValueError as e:
        log.error("Connection row %s is invalid: %s", row.id, e)
        raise StoreError(f"invalid connection row {row.id}: {e}") from e


def _to_edge(row: Follow) -> FollowEdge:
    return FollowEdge(
        follower_id=row.follower_id,
        followee_id=row.followee_id,
        follower_type=row.follower_type,
        followee_type=row.followee_type,
        created_at=row.created_at,
    )


def _to_notification(row: ActorNotification) -> Notification:
    return Notification(
        id=row.id,
        actor_id=row.actor_id,
        kind=row.kind,
        title=row.title,
        message=row.message,
        data=row.data,
        read=row.read,
        created_at=row.created_at,
    )


class SqlAlchemyRelationshipStore:
    """RelationshipStore backed by the async SQLAlchemy session factory."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self):
        session = _current_session.get()
        if session is not None:
            yield session
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            log.error("Relationship store operation failed: %s", e)
            raise StoreError(str(e)) from e

    @asynccontextmanager
    async def transaction(self):
        if _current_session.get() is not None:
            yield
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    token = _current_session.set(session)
                    try:
                        yield
                    finally:
                        _current_session.reset(token)
        except SQLAlchemyError as e:
            log.error("Relationship store transaction failed: %s", e)
            raise StoreError(str(e)) from e

    async def get_connection_request(self, pair_key: str) -> ConnectionRequest | None:
        async with self._session() as db:
            try:
                row = await db.scalar(
                    select(Connection)
                    .where(Connection.pair_key == pair_key)
                    .order_by(Connection.created_at.desc())
                    .limit(1)
                )
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return _to_request(row) if row else None

    async def get_follow_edge(self, follower_id: str, followee_id: str) -> bool:
        async with self._session() as db:
            try:
                row = await db.get(Follow, (follower_id, followee_id))
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return row is not None

    async def upsert_connection_request(self, request: ConnectionRequest) -> ConnectionRequest:
        async with self._session() as db:
            try:
                row = await db.get(Connection, request.id)
                if row is None:
                    row = Connection(id=request.id, pair_key=request.pair_key)
                    db.add(row)
                row.requester_id = request.requester_id
                row.requester_type = request.requester_type.value
                row.recipient_id = request.recipient_id
                row.recipient_type = request.recipient_type.value
                row.state = request.state.value
                row.created_at = request.created_at
                row.responded_at = request.responded_at
                await db.flush()
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return request

    async def set_follow_edge(self, edge: FollowEdge) -> FollowEdge:
        async with self._session() as db:
            try:
                existing = await db.get(Follow, (edge.follower_id, edge.followee_id))
                if existing:
                    return _to_edge(existing)
                db.add(Follow(
                    follower_id=edge.follower_id,
                    followee_id=edge.followee_id,
                    follower_type=edge.follower_type.value,
                    followee_type=edge.followee_type.value,
                    created_at=edge.created_at,
                ))
                await db.flush()
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return edge

    async def delete_follow_edge(self, follower_id: str, followee_id: str) -> bool:
        async with self._session() as db:
            try:
                result = await db.execute(
                    delete(Follow).where(
                        Follow.follower_id == follower_id,
                        Follow.followee_id == followee_id,
                    )
                )
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return (result.rowcount or 0) > 0

    async def list_connection_requests(
        self,
        actor_id: str,
        *,
        state: RequestState | None = None,
        direction: str = "any",
    ) -> list[ConnectionRequest]:
        if direction == "incoming":
            where = Connection.recipient_id == actor_id
        elif direction == "outgoing":
            where = Connection.requester_id == actor_id
        elif direction == "any":
            where = or_(Connection.requester_id == actor_id, Connection.recipient_id == actor_id)
        else:
            raise ValueError(f"unknown direction: {direction!r}")

        q = select(Connection).where(where)
        if state is not None:
            q = q.where(Connection.state == RequestState(state).value)
        async with self._session() as db:
            try:
                rows = (await db.execute(q.order_by(Connection.created_at.desc()))).scalars().all()
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return [_to_request(r) for r in rows]

    async def list_follow_edges(self, actor_id: str, *, direction: str = "outgoing") -> list[FollowEdge]:
        if direction == "outgoing":
            where = Follow.follower_id == actor_id
        elif direction == "incoming":
            where = Follow.followee_id == actor_id
        else:
            raise ValueError(f"unknown direction: {direction!r}")

        async with self._session() as db:
            try:
                rows = (
                    await db.execute(select(Follow).where(where).order_by(Follow.created_at.desc()))
                ).scalars().all()
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return [_to_edge(r) for r in rows]

    async def add_notification(self, notification: Notification) -> Notification:
        async with self._session() as db:
            try:
                row = ActorNotification(
                    actor_id=notification.actor_id,
                    kind=notification.kind,
                    title=notification.title,
                    message=notification.message,
                    data=notification.data,
                    read=notification.read,
                    created_at=notification.created_at,
                )
                db.add(row)
                await db.flush()
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return _to_notification(row)

    async def list_notifications(self, actor_id: str, *, unread_only: bool = False) -> list[Notification]:
        q = select(ActorNotification).where(ActorNotification.actor_id == actor_id)
        if unread_only:
            q = q.where(ActorNotification.read.is_(False))
        async with self._session() as db:
            try:
                rows = (await db.execute(q.order_by(ActorNotification.created_at.desc()))).scalars().all()
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return [_to_notification(r) for r in rows]

    async def mark_notification_read(self, actor_id: str, notification_id: int) -> bool:
        async with self._session() as db:
            try:
                result = await db.execute(
                    update(ActorNotification)
                    .where(
                        ActorNotification.id == notification_id,
                        ActorNotification.actor_id == actor_id,
                    )
                    .values(read=True)
                )
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return (result.rowcount or 0) > 0
