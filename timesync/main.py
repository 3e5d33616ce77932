import asyncio
from contextlib import suppress
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timesync.api.routes import rooms
from timesync.core.config import settings
from timesync.services.rooms.room_service import RoomService
from timesync.services.rooms.room_store import purge_periodically
from timesync.utils.audit_logger import audit_logger


def create_app(room_service: Optional[RoomService] = None) -> FastAPI:
    """Build the API around ``room_service`` (a default in-memory one when omitted)."""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json"
    )
    app.state.room_service = room_service or RoomService.default()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(rooms.router, prefix=f"{settings.API_V1_PREFIX}/rooms", tags=["Rooms"])

    @app.on_event("startup")
    async def startup_event():
        app.state.purge_task = asyncio.create_task(
            purge_periodically(app.state.room_service.store, settings.ROOM_PURGE_INTERVAL_SECONDS)
        )
        audit_logger.log(
            action="application_startup",
            resource_type="application",
            status="success",
            details={"environment": settings.ENVIRONMENT}
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the purge loop and drop rooms past their retention window"""
        purge_task = getattr(app.state, "purge_task", None)
        if purge_task is not None:
            purge_task.cancel()
            with suppress(asyncio.CancelledError):
                await purge_task
        purged = await app.state.room_service.store.purge_expired()
        audit_logger.log(
            action="application_shutdown",
            resource_type="application",
            status="success",
            details={"purged_rooms": len(purged)}
        )

    @app.get("/", tags=["Health"])
    async def health_check():
        return {"status": "ok", "service": settings.PROJECT_NAME}

    return app


app = create_app()
