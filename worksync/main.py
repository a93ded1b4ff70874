"""
FastAPI application factory.

Assembles the app, registers all routers, and wires up lifecycle
events.  Database schema is managed by Alembic — NOT create_all.

Every request passes through two app-wide dependencies: session
resolution (stale sessions cleared, live ones renewed) and the general
API rate limit.
"""

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from worksync.controllers.admin_controller import router as admin_router
from worksync.controllers.auth_controller import router as auth_router
from worksync.controllers.dashboard_controller import router as dashboard_router
from worksync.controllers.events_controller import router as events_router
from worksync.controllers.ie_controller import router as ie_router
from worksync.controllers.supervisor_controller import router as supervisor_router
from worksync.core.config import settings
from worksync.core.database import engine
from worksync.core.security import resolve_session
from worksync.core.tasks import run_periodic, spawn
from worksync.models import Base  # noqa: F401 — ensures all models are registered
from worksync.rbac.dependencies import api_rate_limit
from worksync.realtime.broadcaster import broadcaster
from worksync.realtime.change_feed import change_feed
from worksync.services.rate_limiter import rate_limiter
from worksync.services.session_service import session_registry

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        dependencies=[Depends(resolve_session), Depends(api_rate_limit)],
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(supervisor_router)
    app.include_router(ie_router)
    app.include_router(dashboard_router)
    app.include_router(events_router)

    # ── Startup / Shutdown ───────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup() -> None:
        """Start the change feed and the maintenance loops.

        NOTE: Database schema is managed by Alembic migrations.
        Run `alembic upgrade head` before starting the app.
        """
        await change_feed.start()
        app.state.background_tasks = [
            spawn(broadcaster.heartbeat_loop(), name="sse-heartbeat"),
            spawn(
                run_periodic(
                    "session-sweep",
                    settings.SESSION_SWEEP_INTERVAL_MINUTES * 60,
                    session_registry.sweep_expired,
                ),
                name="session-sweep",
            ),
            spawn(
                run_periodic("rate-limit-sweep", settings.RATE_LIMIT_WINDOW_SECONDS, rate_limiter.sweep),
                name="rate-limit-sweep",
            ),
        ]
        logger.info("%s started.", settings.APP_NAME)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        for task in getattr(app.state, "background_tasks", []):
            task.cancel()
        await change_feed.stop()
        broadcaster.shutdown()
        await engine.dispose()
        logger.info("Database engine disposed.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "realtime": change_feed.is_listening, "clients": len(broadcaster)}

    return app


app = create_app()
