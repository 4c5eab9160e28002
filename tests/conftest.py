import math
import os
from datetime import datetime, timedelta

# Configure an isolated environment before the app modules read it
os.environ["DATABASE_URL"] = "sqlite://"
for key in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "RESEND_API_KEY", "FIREBASE_PROJECT_ID"):
    os.environ[key] = ""
os.environ["QUIET_HOURS_ENABLED"] = "false"
os.environ["LOCAL_TIMEZONE"] = "UTC"
os.environ["REMINDER_CHECK_INTERVAL"] = "0"

import pytest  # noqa: E402

from app import models_job, models_notification  # noqa: E402,F401
from app.database import Base, SessionLocal, engine  # noqa: E402
from app.domain.events.bus import EventBus  # noqa: E402
from app.domain.events.events import EventKind  # noqa: E402
from app.domain.jobs.service import Actor, JobLifecycleService  # noqa: E402
from app.domain.jobs.states import ActorRole  # noqa: E402
from app.shared.geofence import EARTH_RADIUS_METERS  # noqa: E402

JOB_LAT = 40.7128
JOB_LNG = -74.0060

CLIENT = Actor(id="client-1", role=ActorRole.CLIENT)
CLEANER = Actor(id="cleaner-1", role=ActorRole.CLEANER)
OTHER_CLEANER = Actor(id="cleaner-2", role=ActorRole.CLEANER)
ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN)


def north_of(meters: float) -> tuple[float, float]:
    """Coordinates the given distance due north of the job address"""
    return JOB_LAT + math.degrees(meters / EARTH_RADIUS_METERS), JOB_LNG


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 5, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)


class EventRecorder:
    """Subscribes to every event kind and keeps what it saw"""

    def __init__(self, bus: EventBus):
        self.events = []
        for kind in EventKind:
            bus.on(kind, self.record)

    async def record(self, event) -> None:
        self.events.append(event)

    def kinds(self) -> list:
        return [event.kind for event in self.events]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return EventRecorder(bus)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(db, bus, clock):
    return JobLifecycleService(db, bus, clock=clock)


@pytest.fixture
def make_job(service):
    """Offer a job and walk it forward to the requested state"""

    async def _make(
        state: str = "OFFERED",
        contracted_duration_minutes: int = 120,
        hourly_rate_credits: float = 50.0,
        require_photos: bool = False,
    ):
        job = await service.offer_job(
            CLIENT,
            client_id=CLIENT.id,
            address="1 Centre St, New York, NY",
            latitude=JOB_LAT,
            longitude=JOB_LNG,
            contracted_duration_minutes=contracted_duration_minutes,
            hourly_rate_credits=hourly_rate_credits,
            cleaner_ids=[CLEANER.id, OTHER_CLEANER.id],
            scheduled_date="2026-01-05",
            scheduled_time="09:00",
            requires_before_photos=require_photos,
            requires_after_photos=require_photos,
        )
        steps = [
            ("ASSIGNED", lambda: service.accept_job(job.id, CLEANER)),
            ("EN_ROUTE", lambda: service.mark_en_route(job.id, CLEANER)),
            ("ARRIVED", lambda: service.mark_arrived(job.id, CLEANER, JOB_LAT, JOB_LNG)),
            ("IN_PROGRESS", lambda: service.start_job(job.id, CLEANER, JOB_LAT, JOB_LNG)),
            ("AWAITING_CLIENT_REVIEW", lambda: service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)),
        ]
        for reached, step in steps:
            if job.state == state:
                break
            job = await step()
            assert job.state == reached
        assert job.state == state
        return job

    return _make
