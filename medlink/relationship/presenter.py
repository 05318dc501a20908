from dataclasses import dataclass, replace
from enum import Enum

from .types import ActionIntent, ActorType, RelationshipStatus


class Icon(str, Enum):
    USER_PLUS = "user-plus"
    PLUS = "plus"
    CHECK = "check"
    CLOCK = "clock"
    INBOX = "inbox"
    X_CIRCLE = "x-circle"


@dataclass(frozen=True)
class ButtonDescriptor:
    label: str
    icon: Icon
    enabled: bool
    action: ActionIntent | None


LOADING_LABEL = "Loading..."

_CONNECT = ButtonDescriptor("Connect", Icon.USER_PLUS, True, ActionIntent.CONNECT)
_FOLLOW = ButtonDescriptor("Follow", Icon.PLUS, True, ActionIntent.FOLLOW)

_BUTTONS: dict[RelationshipStatus, ButtonDescriptor] = {
    RelationshipStatus.FOLLOWING: ButtonDescriptor("Following", Icon.CHECK, True, ActionIntent.UNFOLLOW),
    RelationshipStatus.PENDING_OUTGOING: ButtonDescriptor("Pending", Icon.CLOCK, True, ActionIntent.CANCEL),
    RelationshipStatus.PENDING_INCOMING: ButtonDescriptor("Respond", Icon.INBOX, True, ActionIntent.ACCEPT),
    RelationshipStatus.CONNECTED: ButtonDescriptor("Connected", Icon.CHECK, False, None),
    RelationshipStatus.BLOCKED_ACTION: ButtonDescriptor(
        "Institutions Cannot Send Requests", Icon.X_CIRCLE, False, None
    ),
}


def present(
    status: RelationshipStatus,
    viewer_type: ActorType,
    *,
    target_type: ActorType = ActorType.INDIVIDUAL,
    loading: bool = False,
) -> ButtonDescriptor:
    status = RelationshipStatus(status)
    if status is RelationshipStatus.NONE:
        both_individual = (
            ActorType(viewer_type) is ActorType.INDIVIDUAL
            and ActorType(target_type) is ActorType.INDIVIDUAL
        )
        button = _CONNECT if both_individual else _FOLLOW
    else:
        button = _BUTTONS[status]

    if loading:
        return replace(button, label=LOADING_LABEL, enabled=False)
    return button
