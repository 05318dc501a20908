import asyncio
import logging

from medlink.utils.concurrency import GuardUnavailable, SingleFlight, SingleFlightGuard

from .bus import ChangeNotificationBus
from .errors import (
    AlreadyInProgress,
    Forbidden,
    InvalidArgument,
    StateConflict,
    StoreError,
    StoreUnavailable,
)
from .resolver import RelationshipStatusResolver
from .store import RelationshipStore
from .types import (
    ActionIntent,
    Actor,
    ConnectionRequest,
    EventKind,
    FollowEdge,
    RelationshipEvent,
    RelationshipStatus,
    RequestState,
    pair_key,
)

log = logging.getLogger(__name__)

S = RelationshipStatus

# statuses (freshly resolved) under which each intent may run
SUPPORTED_STATUSES: dict[ActionIntent, frozenset[RelationshipStatus]] = {
    ActionIntent.CONNECT: frozenset({S.NONE, S.FOLLOWING}),
    ActionIntent.CANCEL: frozenset({S.PENDING_OUTGOING}),
    ActionIntent.ACCEPT: frozenset({S.PENDING_INCOMING}),
    ActionIntent.REJECT: frozenset({S.PENDING_INCOMING}),
    ActionIntent.FOLLOW: frozenset({S.NONE, S.FOLLOWING}),
    ActionIntent.UNFOLLOW: frozenset(RelationshipStatus),
}

EVENT_KINDS: dict[ActionIntent, EventKind] = {
    ActionIntent.CONNECT: EventKind.CONNECTION_REQUEST_SENT,
    ActionIntent.CANCEL: EventKind.FOLLOW_STATUS_UPDATED,
    ActionIntent.ACCEPT: EventKind.CONNECTION_ACCEPTED,
    ActionIntent.REJECT: EventKind.CONNECTION_REJECTED,
    ActionIntent.FOLLOW: EventKind.FOLLOW_STATUS_UPDATED,
    ActionIntent.UNFOLLOW: EventKind.FOLLOW_STATUS_UPDATED,
}


def _retrieve_result(task: asyncio.Task) -> None:
    # the caller may have stopped awaiting; keep the outcome visible in logs
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.debug("Relationship action finished with %r", exc)


class RelationshipActionExecutor:
    def __init__(
        self,
        store: RelationshipStore,
        bus: ChangeNotificationBus,
        *,
        resolver: RelationshipStatusResolver | None = None,
        guard: SingleFlightGuard | None = None,
    ):
        self.store = store
        self.bus = bus
        self.resolver = resolver or RelationshipStatusResolver(store)
        self.guard = guard or SingleFlight()

    async def is_in_flight(self, viewer: Actor, target: Actor) -> bool:
        try:
            return await self.guard.is_held(pair_key(viewer.id, target.id))
        except GuardUnavailable as e:
            raise StoreUnavailable("single-flight backend unavailable") from e

    async def execute(self, viewer: Actor, target: Actor, intent: ActionIntent | str) -> RelationshipStatus:
        """
        Run one relationship action for the pair and return the new status.

        The work runs in its own task: if the caller stops waiting, the
        mutation and its event still complete.
        """
        intent = ActionIntent(intent)
        if viewer.id == target.id:
            raise InvalidArgument(
                "viewer and target must be different actors",
                details={"actor_id": viewer.id},
            )
        if intent is ActionIntent.CONNECT and viewer.is_institution:
            log.warning("Institution %s tried to connect with %s", viewer.id, target.id)
            raise Forbidden(
                "institutions cannot send connection requests",
                details={"viewer_id": viewer.id, "target_id": target.id},
            )

        task = asyncio.ensure_future(self._run(viewer, target, intent))
        task.add_done_callback(_retrieve_result)
        return await asyncio.shield(task)

    async def _run(self, viewer: Actor, target: Actor, intent: ActionIntent) -> RelationshipStatus:
        key = pair_key(viewer.id, target.id)
        try:
            acquired = await self.guard.acquire(key)
        except GuardUnavailable as e:
            raise StoreUnavailable("single-flight backend unavailable") from e
        if not acquired:
            log.warning("Action %s on %s rejected: another action is in flight", intent.value, key)
            raise AlreadyInProgress(
                "another relationship action is in progress for this pair",
                details={"viewer_id": viewer.id, "target_id": target.id, "intent": intent.value},
            )

        try:
            return await self._transition(viewer, target, intent)
        finally:
            await self.guard.release(key)

    async def _transition(self, viewer: Actor, target: Actor, intent: ActionIntent) -> RelationshipStatus:
        status = await self.resolver.resolve(viewer, target)
        if status not in SUPPORTED_STATUSES[intent]:
            log.warning(
                "Action %s from %s to %s conflicts with status %s",
                intent.value, viewer.id, target.id, status.value,
            )
            raise StateConflict(
                f"cannot {intent.value} while status is {status.value}",
                details={"status": status.value, "intent": intent.value},
            )

        try:
            async with self.store.transaction():
                new_status = await self._apply(viewer, target, intent, status)
        except StoreError as e:
            log.error("Action %s from %s to %s failed in store: %s", intent.value, viewer.id, target.id, e)
            raise StoreUnavailable("relationship store unavailable") from e

        log.info(
            "Relationship %s -> %s: %s (%s -> %s)",
            viewer.id, target.id, intent.value, status.value, new_status.value,
        )
        await self.bus.publish(RelationshipEvent(
            kind=EVENT_KINDS[intent],
            viewer_id=viewer.id,
            target_id=target.id,
            new_status=new_status,
            intent=intent,
            data={"viewer_type": viewer.type.value, "target_type": target.type.value},
        ))
        return new_status

    async def _apply(
        self,
        viewer: Actor,
        target: Actor,
        intent: ActionIntent,
        status: RelationshipStatus,
    ) -> RelationshipStatus:
        if intent is ActionIntent.CONNECT:
            await self.store.upsert_connection_request(ConnectionRequest(
                requester_id=viewer.id,
                recipient_id=target.id,
                requester_type=viewer.type,
                recipient_type=target.type,
            ))
            return S.PENDING_OUTGOING

        if intent is ActionIntent.FOLLOW:
            await self.store.set_follow_edge(FollowEdge(
                follower_id=viewer.id,
                followee_id=target.id,
                follower_type=viewer.type,
                followee_type=target.type,
            ))
            return S.FOLLOWING

        if intent is ActionIntent.UNFOLLOW:
            await self.store.delete_follow_edge(viewer.id, target.id)
            return S.NONE if status in (S.NONE, S.FOLLOWING) else status

        request = await self.store.get_connection_request(pair_key(viewer.id, target.id))
        if request is None or request.state is not RequestState.PENDING:
            # the pair guard makes this unreachable unless the store was changed behind it
            raise StateConflict(
                f"no pending connection request to {intent.value}",
                details={"intent": intent.value},
            )

        if intent is ActionIntent.ACCEPT:
            await self.store.upsert_connection_request(request.respond(RequestState.ACCEPTED))
            # follows inside a connection are redundant
            await self.store.delete_follow_edge(viewer.id, target.id)
            await self.store.delete_follow_edge(target.id, viewer.id)
            return S.CONNECTED

        state = RequestState.CANCELLED if intent is ActionIntent.CANCEL else RequestState.REJECTED
        await self.store.upsert_connection_request(request.respond(state))
        following = await self.store.get_follow_edge(viewer.id, target.id)
        return S.FOLLOWING if following else S.NONE
