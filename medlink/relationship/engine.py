from dataclasses import dataclass

from medlink.utils.concurrency import SingleFlightGuard

from .bus import ChangeNotificationBus
from .executor import RelationshipActionExecutor
from .presenter import ButtonDescriptor, present
from .resolver import RelationshipStatusResolver
from .store import RelationshipStore
from .types import ActionIntent, Actor, RelationshipStatus


@dataclass
class RelationshipEngine:
    store: RelationshipStore
    bus: ChangeNotificationBus
    resolver: RelationshipStatusResolver
    executor: RelationshipActionExecutor

    async def status(self, viewer: Actor, target: Actor) -> RelationshipStatus:
        return await self.resolver.resolve(viewer, target)

    async def button(self, viewer: Actor, target: Actor) -> tuple[RelationshipStatus, ButtonDescriptor]:
        """Eligibility status of the pair and the button it maps to."""
        status = await self.resolver.resolve(viewer, target, for_action=True)
        loading = await self.executor.is_in_flight(viewer, target)
        return status, present(status, viewer.type, target_type=target.type, loading=loading)

    async def act(self, viewer: Actor, target: Actor, intent: ActionIntent | str) -> RelationshipStatus:
        return await self.executor.execute(viewer, target, intent)


def build_engine(
    store: RelationshipStore,
    *,
    bus: ChangeNotificationBus | None = None,
    guard: SingleFlightGuard | None = None,
) -> RelationshipEngine:
    bus = bus or ChangeNotificationBus()
    resolver = RelationshipStatusResolver(store)
    executor = RelationshipActionExecutor(store, bus, resolver=resolver, guard=guard)
    return RelationshipEngine(store=store, bus=bus, resolver=resolver, executor=executor)
