from fastapi import Header, HTTPException, Request, status

from medlink.relationship import Actor, ActorType, RelationshipEngine


def get_engine(request: Request) -> RelationshipEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relationship engine not started",
        )
    return engine


async def get_current_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_type: ActorType = Header(default=ActorType.INDIVIDUAL),
) -> Actor:
    # identity comes from the upstream auth layer
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id header",
        )
    return Actor(id=x_actor_id, type=x_actor_type)
