import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import models_job, models_notification  # noqa: F401
from .config import FRONTEND_URL, REMINDER_CHECK_INTERVAL
from .database import Base, SessionLocal, engine
from .domain.events.bus import EventBus
from .domain.jobs.errors import TransitionError
from .domain.jobs.router import router as jobs_router
from .domain.jobs.router import transition_error_handler
from .domain.notifications.router import router as notifications_router
from .realtime.hub import RealtimeHub
from .routes.realtime import router as realtime_router
from .services.notification_service import NotificationOrchestrator, default_quiet_hours
from .services.reminder_service import ReminderService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("websockets").setLevel(logging.WARNING)


def wire_services(app: FastAPI, session_factory=SessionLocal, adapters=None, quiet_hours=None) -> None:
    """One bus, hub, orchestrator and reminder worker per process"""
    app.state.event_bus = EventBus()
    app.state.realtime_hub = RealtimeHub()
    app.state.notification_orchestrator = NotificationOrchestrator(
        session_factory, adapters=adapters, hub=app.state.realtime_hub, quiet_hours=quiet_hours
    )
    app.state.notification_orchestrator.register(app.state.event_bus)
    app.state.reminder_service = ReminderService(session_factory, app.state.notification_orchestrator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    if not hasattr(app.state, "event_bus"):
        wire_services(app, quiet_hours=default_quiet_hours())

    reminder_task = None
    if REMINDER_CHECK_INTERVAL > 0:
        reminder_task = asyncio.create_task(app.state.reminder_service.run_forever())

    yield
    logger.info("Application shutting down...")
    if reminder_task:
        reminder_task.cancel()
        await asyncio.gather(reminder_task, return_exceptions=True)


app = FastAPI(title="CleanEnroll Jobs API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(TransitionError, transition_error_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


app.include_router(jobs_router)
app.include_router(notifications_router)
app.include_router(realtime_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
