"""Alliance roster service application factory."""

import logging
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from allybot.config import get_settings
from roster_common.alliance_sync.access import AccessManager, AllianceAccessProvider
from roster_common.alliance_sync.buddylist import BuddyList
from roster_common.alliance_sync.coordinator import SyncCoordinator
from roster_common.alliance_sync.membership_cache import MembershipCache
from roster_common.alliance_sync.operations import AllianceService
from roster_common.alliance_sync.org_client import OrgRosterClient
from roster_common.alliance_sync.reconciler import RosterReconciler
from roster_common.alliance_sync.scheduler import AllianceSyncScheduler
from roster_common.alliance_sync.store import RosterStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def build_alliance(pool: asyncpg.Pool, settings, buddylist: BuddyList | None = None):
    """Wire the alliance components together. Returns (service, client, access_manager)."""
    store = RosterStore(pool)
    cache = MembershipCache()
    buddylist = buddylist or BuddyList()
    client = OrgRosterClient(
        dimension=settings.dimension,
        base_url=settings.roster_base_url,
        timeout=settings.roster_timeout,
    )
    reconciler = RosterReconciler(store, cache, buddylist, bot_name=settings.bot_name)
    coordinator = SyncCoordinator(client, reconciler)
    service = AllianceService(
        store, cache, buddylist, coordinator,
        default_rank=settings.alliance_default_rank,
        dimension=settings.dimension,
    )

    access_manager = AccessManager()
    access_manager.register_provider(
        AllianceAccessProvider(cache, lambda: settings.alliance_mapped_rank)
    )
    return service, client, access_manager


def create_app() -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting alliance roster service (env=%s)", settings.app_env)

        # asyncpg wants a plain postgresql:// DSN
        raw_dsn = settings.database_url.replace("postgresql+asyncpg://", "postgresql://")
        try:
            pool = await asyncpg.create_pool(raw_dsn, min_size=2, max_size=10)
            logger.info("Alliance asyncpg pool created")
        except Exception as exc:
            logger.warning("Alliance pool not created (DB may not be available): %s", exc)
            pool = None
        app.state.db_pool = pool

        scheduler = None
        if pool is not None:
            service, client, access_manager = build_alliance(pool, settings)
            members = await service.startup()
            logger.info("Alliance membership loaded: %d members", members)

            scheduler = AllianceSyncScheduler(
                db_pool=pool,
                service=service,
                client=client,
                interval_hours=settings.alliance_sync_interval_hours,
            )
            await scheduler.start()

            app.state.alliance_service = service
            app.state.access_manager = access_manager
            app.state.alliance_scheduler = scheduler
        else:
            app.state.alliance_service = None
            app.state.access_manager = None
            app.state.alliance_scheduler = None
            logger.info("Alliance sync skipped (no database pool)")

        yield

        if scheduler is not None:
            await scheduler.stop()
        if pool is not None:
            await pool.close()
        logger.info("Alliance roster service shutdown complete")

    app = FastAPI(
        title="Alliance Roster Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        detail = getattr(exc, "detail", None) or "Not found"
        return JSONResponse({"ok": False, "error": detail}, status_code=404)

    from allybot.api.alliance_routes import alliance_router
    from allybot.api.health import router as health_router

    app.include_router(health_router)
    app.include_router(alliance_router)

    return app
