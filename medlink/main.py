import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medlink.api import health_router
from medlink.api.notify_ws import forward_event
from medlink.api.notify_ws import router as notify_ws_router
from medlink.api.relationship import router as relationship_router
from medlink.core.config import settings
from medlink.relationship import ChangeNotificationBus, InMemoryRelationshipStore, build_engine
from medlink.services.notifications import NotificationRecorder
from medlink.utils.concurrency import build_guard
from medlink.utils.redis_pool import close_redis

log = logging.getLogger("medlink")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)


async def _build_store():
    if settings.STORE_BACKEND == "sql":
        from medlink.db.models import Base
        from medlink.db.session import SessionLocal, engine
        from medlink.relationship.repo import SqlAlchemyRelationshipStore

        if settings.DB_AUTO_CREATE:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        return SqlAlchemyRelationshipStore(SessionLocal)
    if settings.STORE_BACKEND != "memory":
        raise RuntimeError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")
    return InMemoryRelationshipStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    bus = ChangeNotificationBus()
    store = await _build_store()
    engine = build_engine(store, bus=bus, guard=build_guard())

    recorder = NotificationRecorder(store)
    recorder.attach(bus)
    unsubscribe_ws = bus.subscribe_all(forward_event)

    app.state.engine = engine
    log.info("Relationship engine started (store=%s)", type(store).__name__)
    try:
        yield
    finally:
        unsubscribe_ws()
        recorder.detach()
        bus.close()
        app.state.engine = None
        if settings.REDIS_URL:
            await close_redis()
        if settings.STORE_BACKEND == "sql":
            from medlink.db.session import engine as db_engine
            await db_engine.dispose()
        log.info("Relationship engine stopped")


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(relationship_router)
app.include_router(notify_ws_router)
app.include_router(health_router.router)
