import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status as http_status

from medlink.api.deps import get_current_actor, get_engine
from medlink.relationship import (
    Actor,
    ActorType,
    AlreadyInProgress,
    ButtonDescriptor,
    Forbidden,
    InvalidArgument,
    RelationshipEngine,
    RelationshipError,
    StateConflict,
    StoreError,
    StoreUnavailable,
    present,
)
from medlink.schemas.relationship import (
    ActionIn,
    ActionResponse,
    ButtonOut,
    ConnectionListResponse,
    ConnectionRequestOut,
    FollowEdgeOut,
    FollowListResponse,
    NotificationListResponse,
    NotificationOut,
    NotificationReadResponse,
    RelationshipStatusResponse,
    RequestListResponse,
)
from medlink.services import network

log = logging.getLogger(__name__)

router = APIRouter(prefix="/relationships", tags=["relationships"])

_STATUS_CODES = {
    InvalidArgument: 400,
    Forbidden: 403,
    StateConflict: 409,
    AlreadyInProgress: 409,
    StoreUnavailable: 503,
}


def _http_error(exc: RelationshipError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_CODES.get(type(exc), 400),
        detail={
            "ok": False,
            "error": exc.message,
            "code": exc.code,
            "details": exc.details,
        },
    )


def _button_out(button: ButtonDescriptor) -> ButtonOut:
    return ButtonOut(
        label=button.label,
        icon=button.icon.value,
        enabled=button.enabled,
        action=button.action,
    )


@router.get("/me/connections", response_model=ConnectionListResponse)
async def list_my_connections(
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    try:
        ids = await network.list_connections(engine.store, actor.id)
    except RelationshipError as e:
        raise _http_error(e)
    return ConnectionListResponse(count=len(ids), items=ids)


@router.get("/me/requests", response_model=RequestListResponse)
async def list_my_requests(
    direction: str = Query("incoming", pattern="^(incoming|outgoing)$"),
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    try:
        requests = await network.list_pending_requests(engine.store, actor.id, direction)
    except RelationshipError as e:
        raise _http_error(e)
    return RequestListResponse(
        count=len(requests),
        items=[ConnectionRequestOut.model_validate(r) for r in requests],
    )


@router.get("/me/followers", response_model=FollowListResponse)
async def list_my_followers(
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    try:
        edges = await network.list_followers(engine.store, actor.id)
    except RelationshipError as e:
        raise _http_error(e)
    return FollowListResponse(count=len(edges), items=[FollowEdgeOut.model_validate(e) for e in edges])


@router.get("/me/following", response_model=FollowListResponse)
async def list_my_following(
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    try:
        edges = await network.list_following(engine.store, actor.id)
    except RelationshipError as e:
        raise _http_error(e)
    return FollowListResponse(count=len(edges), items=[FollowEdgeOut.model_validate(e) for e in edges])


@router.get("/me/notifications", response_model=NotificationListResponse)
async def list_my_notifications(
    unread_only: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    try:
        items = await engine.store.list_notifications(actor.id, unread_only=unread_only)
    except StoreError as e:
        raise _http_error(StoreUnavailable("relationship store unavailable")) from e
    return NotificationListResponse(
        count=len(items),
        items=[NotificationOut.model_validate(n) for n in items],
    )


@router.post("/me/notifications/{notification_id}/read", response_model=NotificationReadResponse)
async def mark_my_notification_read(
    notification_id: int = Path(..., description="ID of the notification to mark read"),
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    try:
        found = await engine.store.mark_notification_read(actor.id, notification_id)
    except StoreError as e:
        raise _http_error(StoreUnavailable("relationship store unavailable")) from e
    if not found:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={"ok": False, "error": "Notification not found", "code": "NOT_FOUND", "details": None},
        )
    return NotificationReadResponse(id=notification_id, read=True)


@router.get("/{target_id}", response_model=RelationshipStatusResponse)
async def get_relationship_status(
    target_id: str = Path(..., description="ID of the profile being viewed"),
    target_type: ActorType = Query(ActorType.INDIVIDUAL),
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    target = Actor(id=target_id, type=target_type)
    try:
        status, button = await engine.button(actor, target)
    except RelationshipError as e:
        raise _http_error(e)
    return RelationshipStatusResponse(
        viewer_id=actor.id,
        target_id=target_id,
        status=status,
        button=_button_out(button),
    )


@router.post("/{target_id}/actions", response_model=ActionResponse)
async def perform_relationship_action(
    payload: ActionIn,
    target_id: str = Path(..., description="ID of the profile being acted on"),
    actor: Actor = Depends(get_current_actor),
    engine: RelationshipEngine = Depends(get_engine),
):
    target = Actor(id=target_id, type=payload.target_type)
    try:
        status = await engine.act(actor, target, payload.intent)
    except RelationshipError as e:
        raise _http_error(e)

    # the action is already committed here
    try:
        _, button = await engine.button(actor, target)
    except RelationshipError as e:
        log.warning("Button refresh after %s on %s failed: %s", payload.intent.value, target_id, e)
        button = present(status, actor.type, target_type=target.type)
    return ActionResponse(
        viewer_id=actor.id,
        target_id=target_id,
        intent=payload.intent,
        status=status,
        button=_button_out(button),
    )
