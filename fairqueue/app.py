"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fairqueue.core.config import Settings, get_settings
from fairqueue.core.dependencies import Services, init_services
from fairqueue.core.errors import (
    AuthRequired,
    FairQueueError,
    ProfileResolutionError,
    QueueItemNotFound,
    StoreError,
    SubscriptionError,
)
from fairqueue.core.logging import setup_logging
from fairqueue.eventsub.listener import EventSubListener
from fairqueue.routers import (
    auth_router,
    overlay_router,
    queue_router,
    rewards_router,
    status_router,
)
from fairqueue.services.credential_store import CredentialStore
from fairqueue.services.deduplicator import EventDeduplicator
from fairqueue.services.maintenance import maintenance_loop
from fairqueue.services.profile_cache import ProfileCache
from fairqueue.services.queue_engine import QueueEngine
from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.database import DatabaseManager, PoolConfig
from fairqueue.shared.migrations.runner import MigrationRunner
from fairqueue.shared.repositories import (
    CredentialRepository,
    FairQueueRepository,
    KeyValueRepository,
    ProcessedMessageRepository,
    UserCacheRepository,
)

logger = logging.getLogger(__name__)

# Track server start time
_start_time: float = 0.0

_ERROR_STATUS: dict[type[FairQueueError], int] = {
    QueueItemNotFound: 404,
    AuthRequired: 401,
    ProfileResolutionError: 502,
    SubscriptionError: 502,
    StoreError: 503,
}


def _build_services(settings: Settings, db_manager: DatabaseManager) -> Services:
    pool = db_manager.pool
    twitch_api = TwitchAPIClient(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        redirect_url=settings.redirect_url,
    )
    kv = KeyValueRepository(pool)
    credentials = CredentialStore(
        CredentialRepository(pool),
        twitch_api,
        refresh_margin_secs=settings.token_refresh_margin_secs,
    )
    engine = QueueEngine(
        FairQueueRepository(pool),
        EventDeduplicator(
            ProcessedMessageRepository(pool), ttl_secs=settings.processed_message_ttl_secs
        ),
        ProfileCache(
            UserCacheRepository(pool),
            twitch_api,
            ttl_secs=settings.user_cache_ttl_secs,
            serve_stale=settings.serve_stale_profiles,
        ),
        target_reward_ids=settings.reward_ids,
        cancel_reward_id=settings.cancel_reward_id,
        window_secs=settings.participation_window_secs,
    )
    listener = EventSubListener(
        engine,
        credentials,
        twitch_api,
        kv,
        reward_ids=settings.subscribed_reward_ids,
        ws_url=settings.eventsub_ws_url,
        base_delay=settings.reconnect_base_delay_secs,
        max_delay=settings.reconnect_max_delay_secs,
        alert_after=settings.reconnect_alert_after,
    )
    return Services(
        engine=engine, credentials=credentials, twitch_api=twitch_api, kv=kv, listener=listener
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    global _start_time
    _start_time = time.time()

    settings: Settings = app.state.settings

    # Startup
    logger.info("Starting fairqueue")
    logger.info(f"Environment: {settings.environment}")
    if not settings.subscribed_reward_ids:
        logger.warning("No reward ids configured, only admin operations will be served")

    db_manager = DatabaseManager(settings.database_url, PoolConfig(ssl=settings.database_ssl))
    await db_manager.connect()
    app.state.db_manager = db_manager
    await MigrationRunner(db_manager.pool).run_pending()

    services = _build_services(settings, db_manager)
    await services.engine.deduplicator.prune()
    init_services(services)

    tasks = [
        asyncio.create_task(services.listener.run(), name="eventsub-listener"),
        asyncio.create_task(
            maintenance_loop(
                settings.maintenance_interval_secs,
                services.credentials,
                services.engine.deduplicator,
                services.listener,
            ),
            name="maintenance",
        ),
    ]
    logger.info(f"Listening on http://{settings.host}:{settings.port}")

    yield

    # Shutdown
    logger.info("Shutting down fairqueue")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    init_services(None)
    app.state.db_manager = None
    try:
        await services.twitch_api.close()
        await db_manager.disconnect()
        logger.info("Database disconnected")
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


async def _fairqueue_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or get_settings()

    # Setup logging first
    setup_logging(settings)

    app = FastAPI(
        title="fairqueue",
        description="Fair channel point redemption queue",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.db_manager = None

    app.add_exception_handler(FairQueueError, _fairqueue_error_handler)

    # Register routers
    app.include_router(queue_router.router)
    app.include_router(overlay_router.router)
    app.include_router(status_router.router)
    app.include_router(rewards_router.router)
    app.include_router(auth_router.router)

    # Liveness check, always 200, no external dependency
    @app.get("/health")
    async def health():
        """Liveness check (no DB dependency)"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time) if _start_time else 0,
        }

    # Readiness check, includes a real DB round trip
    @app.get("/ready")
    async def ready():
        """Readiness check (503 until the database answers)"""
        db_manager: DatabaseManager | None = app.state.db_manager
        db_ok = db_manager is not None and await db_manager.check_health()
        return JSONResponse(
            status_code=200 if db_ok else 503,
            content={"status": "ready" if db_ok else "not_ready", "db_connected": db_ok},
        )

    return app
