import logging
from typing import Callable

from medlink.relationship import (
    ChangeNotificationBus,
    EventKind,
    Notification,
    RelationshipEvent,
    RelationshipStore,
)

log = logging.getLogger(__name__)


class NotificationRecorder:
    """Writes a user-facing notification for request and acceptance events."""

    def __init__(self, store: RelationshipStore):
        self.store = store
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, bus: ChangeNotificationBus) -> None:
        self._unsubscribers.append(
            bus.subscribe(EventKind.CONNECTION_REQUEST_SENT, self.on_request_sent)
        )
        self._unsubscribers.append(
            bus.subscribe(EventKind.CONNECTION_ACCEPTED, self.on_request_accepted)
        )

    def detach(self) -> None:
        while self._unsubscribers:
            self._unsubscribers.pop()()

    async def on_request_sent(self, event: RelationshipEvent) -> None:
        if not event.target_id:
            return
        await self.store.add_notification(Notification(
            actor_id=event.target_id,
            kind="connection_request",
            title="New Connection Request",
            message=f"{event.viewer_id} wants to connect with you",
            data={"profileId": event.viewer_id},
        ))
        log.info("Connection request notification stored for %s", event.target_id)

    async def on_request_accepted(self, event: RelationshipEvent) -> None:
        # the accepting actor is the viewer; the requester gets notified
        if not event.target_id:
            return
        await self.store.add_notification(Notification(
            actor_id=event.target_id,
            kind="connection_accepted",
            title="Connection Accepted",
            message=f"{event.viewer_id} accepted your connection request",
            data={"profileId": event.viewer_id},
        ))
        log.info("Connection accepted notification stored for %s", event.target_id)
