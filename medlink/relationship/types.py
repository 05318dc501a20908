from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4


def _now():
    return datetime.now(timezone.utc)


class ActorType(str, Enum):
    INDIVIDUAL = "individual"
    INSTITUTION = "institution"


class RequestState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


ACTIVE_STATES = frozenset({RequestState.PENDING, RequestState.ACCEPTED})


class RelationshipStatus(str, Enum):
    NONE = "none"
    FOLLOWING = "following"
    PENDING_OUTGOING = "pending_outgoing"
    PENDING_INCOMING = "pending_incoming"
    CONNECTED = "connected"
    BLOCKED_ACTION = "blocked_action"


class ActionIntent(str, Enum):
    CONNECT = "connect"
    CANCEL = "cancel"
    ACCEPT = "accept"
    REJECT = "reject"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"


class EventKind(str, Enum):
    POST_CREATED = "post-created"
    FOLLOW_STATUS_UPDATED = "follow-status-updated"
    CONNECTION_REQUEST_SENT = "connection-request-sent"
    CONNECTION_ACCEPTED = "connection-accepted"
    CONNECTION_REJECTED = "connection-rejected"


def pair_key(a_id: str, b_id: str) -> str:
    """Key of the unordered actor pair; identical for (a, b) and (b, a)."""
    lo, hi = sorted((a_id, b_id))
    return f"{lo}:{hi}"


@dataclass(frozen=True)
class Actor:
    id: str
    type: ActorType = ActorType.INDIVIDUAL

    def __post_init__(self):
        object.__setattr__(self, "type", ActorType(self.type))

    @property
    def is_institution(self) -> bool:
        return self.type is ActorType.INSTITUTION


@dataclass(frozen=True)
class ConnectionRequest:
    requester_id: str
    recipient_id: str
    state: RequestState = RequestState.PENDING
    requester_type: ActorType = ActorType.INDIVIDUAL
    recipient_type: ActorType = ActorType.INDIVIDUAL
    created_at: datetime = field(default_factory=_now)
    responded_at: datetime | None = None
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self):
        object.__setattr__(self, "state", RequestState(self.state))
        object.__setattr__(self, "requester_type", ActorType(self.requester_type))
        object.__setattr__(self, "recipient_type", ActorType(self.recipient_type))
        if self.requester_type is ActorType.INSTITUTION:
            raise ValueError("institutions cannot initiate connection requests")

    @property
    def pair_key(self) -> str:
        return pair_key(self.requester_id, self.recipient_id)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def respond(self, state: RequestState) -> "ConnectionRequest":
        return replace(self, state=state, responded_at=_now())


@dataclass(frozen=True)
class FollowEdge:
    follower_id: str
    followee_id: str
    follower_type: ActorType = ActorType.INDIVIDUAL
    followee_type: ActorType = ActorType.INDIVIDUAL
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class Notification:
    actor_id: str
    kind: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    read: bool = False
    created_at: datetime = field(default_factory=_now)
    id: int | None = None


@dataclass(frozen=True)
class RelationshipEvent:
    """Change cue published on the bus; subscribers re-resolve rather than trust it."""

    kind: EventKind
    viewer_id: str
    target_id: str | None = None
    new_status: RelationshipStatus | None = None
    intent: ActionIntent | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "kind", EventKind(self.kind))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "viewer_id": self.viewer_id,
            "target_id": self.target_id,
            "new_status": self.new_status.value if self.new_status else None,
            "intent": self.intent.value if self.intent else None,
            "data": dict(self.data),
        }
