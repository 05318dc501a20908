import inspect
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Union

from .types import EventKind, RelationshipEvent

log = logging.getLogger(__name__)

Handler = Callable[[RelationshipEvent], Union[Awaitable[None], None]]


class ChangeNotificationBus:
    """
    In-process publish/subscribe registry keyed by event kind.

    Created once at application start and closed at shutdown. Handlers of a
    kind run one after another in subscription order, so each subscriber sees
    events in publish order. A failing handler is logged and skipped.
    """

    def __init__(self):
        self._handlers: dict[EventKind, list[Handler]] = defaultdict(list)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, kind: EventKind | str, handler: Handler) -> Callable[[], None]:
        kind = EventKind(kind)
        if self._closed:
            raise RuntimeError("notification bus is closed")
        self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(kind)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        unsubscribers = [self.subscribe(kind, handler) for kind in EventKind]

        def unsubscribe() -> None:
            for unsub in unsubscribers:
                unsub()

        return unsubscribe

    def subscriber_count(self, kind: EventKind | str) -> int:
        return len(self._handlers.get(EventKind(kind), ()))

    async def publish(self, event: RelationshipEvent) -> int:
        """Deliver the event to every handler of its kind; returns the number reached."""
        kind = EventKind(event.kind)
        if self._closed:
            log.warning("Dropping %s event, bus is closed", kind.value)
            return 0

        delivered = 0
        for handler in list(self._handlers.get(kind, ())):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                log.exception("Subscriber %r failed on %s", handler, kind.value)
        log.debug("Published %s to %d subscriber(s)", kind.value, delivered)
        return delivered

    def close(self) -> None:
        self._handlers.clear()
        self._closed = True
