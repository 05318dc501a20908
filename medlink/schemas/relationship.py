from datetime import datetime
from typing import Any

from pydantic import BaseModel

from medlink.relationship import ActionIntent, ActorType, RelationshipStatus, RequestState


class ButtonOut(BaseModel):
    label: str
    icon: str
    enabled: bool
    action: ActionIntent | None = None


class RelationshipStatusResponse(BaseModel):
    viewer_id: str
    target_id: str
    status: RelationshipStatus
    button: ButtonOut


class ActionIn(BaseModel):
    intent: ActionIntent
    target_type: ActorType = ActorType.INDIVIDUAL


class ActionResponse(BaseModel):
    viewer_id: str
    target_id: str
    intent: ActionIntent
    status: RelationshipStatus
    button: ButtonOut


class ConnectionRequestOut(BaseModel):
    id: str
    requester_id: str
    recipient_id: str
    requester_type: ActorType
    recipient_type: ActorType
    state: RequestState
    created_at: datetime
    responded_at: datetime | None = None

    class Config:
        from_attributes = True


class FollowEdgeOut(BaseModel):
    follower_id: str
    followee_id: str
    follower_type: ActorType
    followee_type: ActorType
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationOut(BaseModel):
    id: int | None = None
    actor_id: str
    kind: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ConnectionListResponse(BaseModel):
    count: int
    items: list[str]


class RequestListResponse(BaseModel):
    count: int
    items: list[ConnectionRequestOut]


class FollowListResponse(BaseModel):
    count: int
    items: list[FollowEdgeOut]


class NotificationListResponse(BaseModel):
    count: int
    items: list[NotificationOut]


class NotificationReadResponse(BaseModel):
    id: int
    read: bool
