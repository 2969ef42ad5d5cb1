from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from .core.config import get_settings, Settings
from .core.logging import init_logging, request_context_middleware
from .db.dal import Database
from .db.migrate import apply_migrations
from .db.seed import seed_demo_data
from .core import errors
from .routers import admin, health, offers, orders, payments, rates, realtime, users
from .services.dispatch import AuditEntry, Notification, SideEffectDispatcher
from .services.notifications import EmailNotifier, NotificationRouter, SmsNotifier
from .services.rates.broadcast import RateBroadcaster

logger = logging.getLogger("app")


def build_dispatcher(db: Database, settings: Settings) -> SideEffectDispatcher:
    def write_audit(entry: AuditEntry) -> None:
        db.insert_audit_log(
            entry.actor_id, entry.action, entry.entity, entry.entity_id, entry.metadata
        )

    return SideEffectDispatcher(
        {
            AuditEntry: write_audit,
            Notification: NotificationRouter(EmailNotifier(settings), SmsNotifier(settings)),
        }
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.dispatcher.start()
    await app.state.broadcaster.start()
    try:
        yield
    finally:
        await app.state.broadcaster.stop()
        await app.state.dispatcher.stop()


def create_app(settings_override: Settings | None = None) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB). Falls back to cached get_settings().
    The broadcaster and dispatcher are owned by the app (app.state) and run for
    the lifetime of the lifespan context.
    """
    settings = settings_override or get_settings()
    if settings.db_path is None:
        settings.init_post_load()
    init_logging(debug=settings.debug)

    # Ensure database schema (idempotent) so test-injected fresh DBs have tables
    try:
        apply_migrations(settings.db_path)  # type: ignore[arg-type]
        if settings.seed_demo_data:
            seed_demo_data(settings.db_path)  # type: ignore[arg-type]
    except Exception:
        logger.exception("failed to prepare database on startup")
        raise

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )

    db = Database(settings.db_path)  # type: ignore[arg-type]
    app.state.settings = settings
    app.state.dispatcher = build_dispatcher(db, settings)
    app.state.broadcaster = RateBroadcaster(
        db.rate_snapshot, interval_seconds=settings.rate_broadcast_interval_seconds
    )

    # Middleware (request id / structured logging)
    app.middleware("http")(request_context_middleware)

    # Error handlers
    app.add_exception_handler(errors.MarketplaceError, errors.marketplace_error_handler)
    app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(rates.router)
    app.include_router(realtime.router)
    app.include_router(orders.router)
    app.include_router(offers.router)
    app.include_router(payments.router)
    app.include_router(users.router)
    app.include_router(admin.router)

    @app.get("/")
    async def root():
        return {"message": "Forex Marketplace API", "version": settings.version}

    return app


app = create_app()
