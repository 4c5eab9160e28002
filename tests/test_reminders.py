from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from app.database import SessionLocal
from app.domain.notifications.repository import NotificationRepository, ProfileRepository
from app.models_notification import ReminderLog
from app.services.in_app_service import create_in_app_notification
from app.services.notification_service import ChannelAdapters, NotificationOrchestrator
from app.services.reminder_service import ReminderService

from .conftest import CLEANER, FakeClock


@pytest.fixture
def adapters():
    return ChannelAdapters(
        in_app=create_in_app_notification,
        email=AsyncMock(return_value=None),
        sms=AsyncMock(return_value=(True, None)),
        push=AsyncMock(return_value=(True, None)),
    )


@pytest.fixture
def reminder_clock():
    return FakeClock(datetime(2026, 1, 5, 8, 20))


@pytest.fixture
def reminders(db, adapters, reminder_clock):
    ProfileRepository.upsert(db, CLEANER.id, role="cleaner", full_name="Sam Cleaner", phone="+15551230002")
    orchestrator = NotificationOrchestrator(SessionLocal, adapters=adapters)
    return ReminderService(SessionLocal, orchestrator, clock=reminder_clock, interval=60)


def cleaner_types(db):
    return [n.notification_type for n in NotificationRepository.list_for_user(db, CLEANER.id)]


class TestUpcomingJobs:
    async def test_each_tier_sent_once(self, db, make_job, reminders, reminder_clock, adapters):
        await make_job("ASSIGNED")

        results = await reminders.run_checks()
        assert [r["event"] for r in results] == ["job_reminder_60"]
        assert results[0]["push_sent"] is True
        adapters.sms.assert_not_awaited()

        assert await reminders.run_checks() == []

        reminder_clock.advance(minutes=30)
        results = await reminders.run_checks()
        assert [r["event"] for r in results] == ["job_reminder_15"]
        assert "starts in 10 minutes" in adapters.push.await_args.args[2].body
        assert sorted(cleaner_types(db)) == ["job_reminder_15", "job_reminder_60"]

    async def test_nothing_more_than_an_hour_out(self, make_job, reminders, reminder_clock):
        await make_job("ASSIGNED")
        reminder_clock.advance(minutes=-30)
        assert await reminders.run_checks() == []

    async def test_unassigned_offers_are_skipped(self, make_job, reminders):
        await make_job("OFFERED")
        assert await reminders.run_checks() == []


class TestLateArrival:
    async def test_assigned_job_past_start(self, db, make_job, reminders, reminder_clock):
        await make_job("ASSIGNED")
        reminder_clock.now = datetime(2026, 1, 5, 9, 3)
        assert await reminders.run_checks() == []

        reminder_clock.now = datetime(2026, 1, 5, 9, 7)
        results = await reminders.run_checks()

        assert [r["event"] for r in results] == ["late_arrival"]
        notification = NotificationRepository.list_for_user(db, CLEANER.id)[0]
        assert notification.message.startswith("You're 7 minutes late")
        assert notification.priority == "high"

    async def test_en_route_past_eta(self, make_job, reminders, reminder_clock):
        await make_job("EN_ROUTE")
        reminder_clock.now = datetime(2026, 1, 5, 9, 21)

        results = await reminders.run_checks()

        assert [r["event"] for r in results] == ["late_arrival"]
        assert await reminders.run_checks() == []

    async def test_arrived_jobs_are_not_late(self, make_job, reminders, reminder_clock):
        await make_job("ARRIVED")
        reminder_clock.now = datetime(2026, 1, 5, 10, 0)
        assert await reminders.run_checks() == []


class TestPhotoReminders:
    async def test_before_then_after(self, db, make_job, reminders, reminder_clock):
        await make_job("IN_PROGRESS", require_photos=True)

        reminder_clock.now = datetime(2026, 1, 5, 9, 29)
        assert await reminders.run_checks() == []

        reminder_clock.now = datetime(2026, 1, 5, 9, 30)
        assert [r["event"] for r in await reminders.run_checks()] == ["photo_reminder_before"]

        reminder_clock.now = datetime(2026, 1, 5, 10, 45)
        assert [r["event"] for r in await reminders.run_checks()] == ["photo_reminder_after"]
        assert db.query(ReminderLog).count() == 2

    async def test_no_reminder_when_photos_not_required(self, make_job, reminders, reminder_clock):
        await make_job("IN_PROGRESS")
        reminder_clock.now = datetime(2026, 1, 5, 11, 0)
        assert await reminders.run_checks() == []

    async def test_no_before_reminder_once_photos_uploaded(self, service, make_job, reminders, reminder_clock):
        job = await make_job("IN_PROGRESS", require_photos=True)
        for i in range(3):
            await service.record_photo(job.id, CLEANER, "before", f"photo-{i}")

        reminder_clock.now = datetime(2026, 1, 5, 9, 40)
        assert await reminders.run_checks() == []


async def test_worker_survives_a_failing_pass(reminders, monkeypatch):
    calls = []

    async def broken():
        calls.append(1)
        if len(calls) == 2:
            raise KeyboardInterrupt
        raise RuntimeError("database unavailable")

    async def no_sleep(interval):
        pass

    monkeypatch.setattr(reminders, "run_checks", broken)
    monkeypatch.setattr(reminders, "_sleep", no_sleep)

    with pytest.raises(KeyboardInterrupt):
        await reminders.run_forever()
    assert len(calls) == 2
