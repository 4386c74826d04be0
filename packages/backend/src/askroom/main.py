"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown of the session store, the
broadcast fabric, and the per-process real-time components. Middleware,
CORS, and routers are all registered here.

Tests pass a memory store and a memory fabric straight into create_app();
production builds them from settings (Postgres + Redis).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from askroom import __version__
from askroom.api import api_router
from askroom.config import Settings, settings as default_settings
from askroom.log_config import configure_logging
from askroom.realtime.broadcaster import RoomBroadcaster
from askroom.realtime.dispatch import MessageDispatcher
from askroom.realtime.pubsub import (
    BroadcastFabric,
    MemoryBroadcastFabric,
    MemoryFabricHub,
    RedisBroadcastFabric,
    connect_redis,
)
from askroom.realtime.registry import ConnectionRegistry
from askroom.services.session_engine import SessionEngine
from askroom.store import MemorySessionStore, SessionStore

logger = structlog.get_logger()


# ─── Component builders ───────────────────────────────────


async def build_store(settings: Settings) -> SessionStore:
    """Session store for the configured backend."""
    if settings.store_backend == "memory":
        return MemorySessionStore()

    from askroom.db.engine import build_engine_from_settings, build_session_factory
    from askroom.store.sql import SqlSessionStore

    engine = build_engine_from_settings(settings)
    store = SqlSessionStore(engine, build_session_factory(engine))
    if settings.database_auto_create:
        await store.create_schema()
        logger.info("askroom.schema_created")
    return store


async def build_fabric(settings: Settings) -> BroadcastFabric:
    """Broadcast fabric for the configured backend.

    Learn: The memory fabric only reaches this process. It's for single-
    server development; two processes on memory fabrics can't see each
    other's rooms' events.
    """
    if settings.fabric_backend == "memory":
        return MemoryBroadcastFabric(MemoryFabricHub(), server_id=settings.server_id)

    redis = await connect_redis(settings.redis_url)
    logger.info("askroom.redis_connected", url=settings.redis_url)
    return RedisBroadcastFabric(
        redis,
        server_id=settings.server_id,
        channel_prefix=settings.fabric_channel_prefix,
        timeout_seconds=settings.fabric_timeout_seconds,
    )


# ─── App ──────────────────────────────────────────────────


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[SessionStore] = None,
    fabric: Optional[BroadcastFabric] = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Components passed in are used as-is and not closed at shutdown;
    the caller owns them.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle.

        Learn: Anything before `yield` runs at startup, after `yield`
        runs at shutdown. Store and fabric must both be reachable before
        the process accepts sockets; there's no degraded mode where rooms
        silently stop reaching other servers.
        """
        configure_logging(settings.log_level, settings.log_json)
        logger.info(
            "askroom.starting",
            version=__version__,
            environment=settings.environment,
            server_id=settings.server_id,
            store=settings.store_backend if store is None else type(store).__name__,
            fabric=settings.fabric_backend if fabric is None else type(fabric).__name__,
        )

        app_store = store or await build_store(settings)
        app_fabric = fabric or await build_fabric(settings)

        registry = ConnectionRegistry()
        broadcaster = RoomBroadcaster(registry, app_fabric)
        engine = SessionEngine(
            app_store,
            room_code_length=settings.room_code_length,
            close_grace_seconds=settings.close_grace_seconds,
            store_timeout_seconds=settings.store_timeout_seconds,
        )
        await broadcaster.start()

        purged = await engine.purge_expired_rooms()
        if purged:
            logger.info("askroom.expired_rooms_purged", count=purged)

        app.state.settings = settings
        app.state.store = app_store
        app.state.fabric = app_fabric
        app.state.registry = registry
        app.state.broadcaster = broadcaster
        app.state.engine = engine
        app.state.dispatcher = MessageDispatcher(engine, registry, broadcaster)

        yield

        logger.info("askroom.shutdown", server_id=settings.server_id)
        await engine.shutdown()
        if fabric is None:
            await app_fabric.close()
        if store is None:
            await app_store.close()

    app = FastAPI(
        title="Askroom",
        description="Real-time audience Q&A rooms",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → CORS → handler

    from askroom.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware, server_id=settings.server_id)

    app.include_router(api_router)

    from askroom.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: askroom.main:app)
app = create_app()
