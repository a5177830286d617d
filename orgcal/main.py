from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from orgcal.api.v1.auth import router as auth_router
from orgcal.api.v1.events import router as events_router
from orgcal.api.v1.health import router as health_router
from orgcal.api.v1.live import router as live_router
from orgcal.api.v1.notifications import router as notifications_router
from orgcal.api.v1.reminders import router as reminders_router
from orgcal.api.v1.settings import router as settings_router
from orgcal.config import settings
from orgcal.core.errors import CalendarError
from orgcal.core.live.broadcaster import LiveBroadcaster
from orgcal.core.live.relay import RedisRelay
from orgcal.core.reminders.queue import CeleryJobQueue
from orgcal.core.reminders.service import ReminderService
from orgcal.db.base import async_session_context

# Configure basic logging
logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

description = """
Organizational calendar: scoped events and recurring series, reminder scheduling,
notification fan-out and live change notices.
"""
tags_metadata = [
    {"name": "Authentication & Testing", "description": "Development-only token issuance."},
    {"name": "Events", "description": "Events, series and their occurrences."},
    {"name": "Notifications", "description": "Per-user inbox and the manual reminder check."},
    {"name": "Reminders", "description": "Administrative reminder maintenance."},
    {"name": "Settings", "description": "Runtime-tunable product settings."},
    {"name": "Live", "description": "Server-sent change notices."},
    {"name": "Health", "description": "Liveness and dependency checks."},
]

app = FastAPI(
    title="OrgCal API",
    description=description,
    version="0.3.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)

app.include_router(auth_router)
app.include_router(events_router)
app.include_router(notifications_router)
app.include_router(reminders_router)
app.include_router(settings_router)
app.include_router(live_router)
app.include_router(health_router)

app.state.broadcaster = LiveBroadcaster(queue_size=settings.LIVE_SESSION_QUEUE_SIZE)
app.state.relay = RedisRelay(app.state.broadcaster) if settings.LIVE_RELAY_ENABLED else None
# with the relay on, local sessions hear our own notices back through Redis
app.state.publish = app.state.relay.publish if app.state.relay else app.state.broadcaster.broadcast

log.info("\U0001F331 FastAPI application configured. Environment: %s", settings.ENVIRONMENT)


@app.exception_handler(CalendarError)
async def calendar_error_handler(request: Request, exc: CalendarError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid input')}" if where else first.get("msg", "invalid input")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": {"code": "VALIDATION_ERROR", "message": message}},
    )


@app.on_event("startup")
async def startup_event() -> None:
    if app.state.relay is not None:
        app.state.relay.start()
    if settings.RUN_BACKFILL_ON_STARTUP:
        try:
            async with async_session_context() as session:
                reminders = ReminderService(session, queue=CeleryJobQueue())
                result = await reminders.check_now()
            reminders.flush_queue()
            log.info("Startup reminder backfill: %s", result)
        except Exception:
            log.exception("Startup reminder backfill failed")
    log.info("\U0001F680 FastAPI application startup complete.")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if app.state.relay is not None:
        await app.state.relay.stop()
    log.info("\U0001F44B FastAPI application shutdown.")


@app.get("/healthz", tags=["Health"], status_code=status.HTTP_200_OK)
async def health_check():
    """Basic health check endpoint."""
    return {"status": "ok", "environment": settings.ENVIRONMENT}
