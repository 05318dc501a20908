import logging

from .errors import InvalidArgument, StoreError, StoreUnavailable
from .store import RelationshipStore
from .types import Actor, ActorType, ConnectionRequest, RelationshipStatus, RequestState, pair_key

log = logging.getLogger(__name__)


def status_from_edges(
    viewer_id: str,
    request: ConnectionRequest | None,
    following: bool,
) -> RelationshipStatus:
    """First match wins: connection state beats the follow edge."""
    if request is not None and request.is_active:
        if request.state is RequestState.ACCEPTED:
            return RelationshipStatus.CONNECTED
        if request.requester_id == viewer_id:
            return RelationshipStatus.PENDING_OUTGOING
        return RelationshipStatus.PENDING_INCOMING
    if following:
        return RelationshipStatus.FOLLOWING
    return RelationshipStatus.NONE


def connect_is_forward_action(target: Actor) -> bool:
    # connecting is the relation offered towards individuals
    return target.type is ActorType.INDIVIDUAL


class RelationshipStatusResolver:
    def __init__(self, store: RelationshipStore):
        self.store = store

    async def resolve(self, viewer: Actor, target: Actor, *, for_action: bool = False) -> RelationshipStatus:
        """
        Compute the current status of the (viewer, target) pair from the store.

        With `for_action=True` the result answers "which button may the viewer
        see": an institution looking at a pair whose forward action is
        `connect` gets `blocked_action` instead of `none`/`following`.
        """
        if viewer.id == target.id:
            raise InvalidArgument(
                "viewer and target must be different actors",
                details={"actor_id": viewer.id},
            )

        try:
            request = await self.store.get_connection_request(pair_key(viewer.id, target.id))
            following = await self.store.get_follow_edge(viewer.id, target.id)
        except StoreError as e:
            raise StoreUnavailable("relationship store unavailable") from e

        status = status_from_edges(viewer.id, request, following)

        if (
            for_action
            and viewer.is_institution
            and status in (RelationshipStatus.NONE, RelationshipStatus.FOLLOWING)
            and connect_is_forward_action(target)
        ):
            return RelationshipStatus.BLOCKED_ACTION

        return status
