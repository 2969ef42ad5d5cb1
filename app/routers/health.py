from fastapi import APIRouter, Request

from app.db.dal import Database

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness and dependency status")
async def health(request: Request):
    settings = request.app.state.settings
    broadcaster = request.app.state.broadcaster
    db = Database(settings.db_path)
    return {
        "status": "ok",
        "version": settings.version,
        "active_rates": len(db.list_rates(active_only=True)),
        "rate_broadcaster": {
            "running": broadcaster.running,
            "subscribers": broadcaster.subscriber_count,
            "interval_seconds": broadcaster.interval_seconds,
        },
        "dispatcher_running": request.app.state.dispatcher.running,
    }
