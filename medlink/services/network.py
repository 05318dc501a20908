from medlink.relationship import (
    ConnectionRequest,
    FollowEdge,
    RelationshipStore,
    RequestState,
    StoreError,
    StoreUnavailable,
)


async def list_connections(store: RelationshipStore, actor_id: str) -> list[str]:
    """Ids of the actors connected with actor_id, newest connection first."""
    try:
        accepted = await store.list_connection_requests(actor_id, state=RequestState.ACCEPTED)
    except StoreError as e:
        raise StoreUnavailable("relationship store unavailable") from e
    return [
        r.recipient_id if r.requester_id == actor_id else r.requester_id
        for r in accepted
    ]


async def list_pending_requests(
    store: RelationshipStore,
    actor_id: str,
    direction: str = "incoming",
) -> list[ConnectionRequest]:
    try:
        return await store.list_connection_requests(
            actor_id,
            state=RequestState.PENDING,
            direction=direction,
        )
    except StoreError as e:
        raise StoreUnavailable("relationship store unavailable") from e


async def list_followers(store: RelationshipStore, actor_id: str) -> list[FollowEdge]:
    try:
        return await store.list_follow_edges(actor_id, direction="incoming")
    except StoreError as e:
        raise StoreUnavailable("relationship store unavailable") from e


async def list_following(store: RelationshipStore, actor_id: str) -> list[FollowEdge]:
    try:
        return await store.list_follow_edges(actor_id, direction="outgoing")
    except StoreError as e:
        raise StoreUnavailable("relationship store unavailable") from e
