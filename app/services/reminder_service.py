"""
Cleaner Reminder Worker
Runs every minute and nudges the assigned cleaner about jobs starting soon,
late arrivals and missing photos. Each reminder goes out once per job.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from .. import config
from ..domain.jobs.repository import JobRepository
from ..domain.jobs.states import JobState
from ..domain.notifications.repository import ProfileRepository, ReminderLogRepository
from ..models_job import Job
from ..models_notification import UserProfile
from ..shared.timekeeping import scheduled_start_utc, utcnow
from .notification_service import NotificationOrchestrator
from .notification_templates import (
    RenderedNotification,
    render_late_arrival,
    render_photo_reminder,
    render_upcoming_job_reminder,
)

logger = logging.getLogger(__name__)


def _minutes_between(earlier: datetime, later: datetime) -> int:
    return math.floor((later - earlier).total_seconds() / 60)


class ReminderService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        orchestrator: NotificationOrchestrator,
        clock: Callable[[], datetime] = utcnow,
        interval: float = config.REMINDER_CHECK_INTERVAL,
        sleep=asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.orchestrator = orchestrator
        self.clock = clock
        self.interval = interval
        self._sleep = sleep

    def _start(self, job: Job) -> Optional[datetime]:
        return scheduled_start_utc(job.scheduled_date, job.scheduled_time, config.LOCAL_TIMEZONE)

    # ------------------------------------------------------------------
    # Checks - each returns the reminder for a job, or None
    # ------------------------------------------------------------------

    def upcoming_reminder(self, job: Job, now: datetime) -> Optional[RenderedNotification]:
        """Assigned jobs starting within the hour, one reminder per 60/30/15 minute tier"""
        start = self._start(job)
        if job.state != JobState.ASSIGNED.value or start is None:
            return None
        minutes_until = math.ceil((start - now).total_seconds() / 60)
        if not 0 < minutes_until <= 60:
            return None
        return render_upcoming_job_reminder(job, minutes_until)

    def late_reminder(self, job: Job, now: datetime) -> Optional[RenderedNotification]:
        """Cleaner not on site past the booked start, or past the ETA once en route"""
        if job.state == JobState.ASSIGNED.value:
            expected = self._start(job)
        elif job.state == JobState.EN_ROUTE.value and job.en_route_at:
            expected = job.en_route_at + timedelta(minutes=config.DEFAULT_ETA_MINUTES)
        else:
            return None
        if expected is None:
            return None
        minutes_late = _minutes_between(expected, now)
        if minutes_late < config.LATE_ARRIVAL_GRACE_MINUTES:
            return None
        return render_late_arrival(job, minutes_late)

    def photo_reminders(self, job: Job, now: datetime) -> List[RenderedNotification]:
        if job.state != JobState.IN_PROGRESS.value or not job.start_at:
            return []
        elapsed = _minutes_between(job.start_at, now)
        reminders = []
        if (
            job.requires_before_photos
            and (job.before_photos_count or 0) < config.MIN_PHOTOS_PER_PHASE
            and elapsed >= config.PHOTO_REMINDER_AFTER_MINUTES
        ):
            reminders.append(render_photo_reminder(job, "before"))
        # After photos are due as the contracted time runs out
        wrap_up_at = max((job.max_billable_minutes or job.contracted_duration_minutes) - 15, 0)
        if (
            job.requires_after_photos
            and (job.after_photos_count or 0) < config.MIN_PHOTOS_PER_PHASE
            and elapsed >= wrap_up_at
        ):
            reminders.append(render_photo_reminder(job, "after"))
        return reminders

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    async def run_checks(self) -> List[dict]:
        """One pass over active jobs. Returns a delivery result per reminder sent."""
        now = self.clock()
        db = self.session_factory()
        results = []
        try:
            for state in (JobState.ASSIGNED, JobState.EN_ROUTE, JobState.IN_PROGRESS):
                for job in JobRepository.filter(db, limit=500, state=state.value):
                    if not job.assigned_cleaner_id:
                        continue
                    due = [self.upcoming_reminder(job, now), self.late_reminder(job, now)]
                    due += self.photo_reminders(job, now)
                    for rendered in due:
                        if rendered is None:
                            continue
                        result = await self._send_once(db, job, rendered)
                        if result:
                            results.append(result)
        finally:
            db.close()
        if results:
            logger.info(f"⏰ Sent {len(results)} cleaner reminders")
        return results

    async def _send_once(self, db: Session, job: Job, rendered: RenderedNotification) -> Optional[dict]:
        key = rendered.notification_type
        if ReminderLogRepository.was_sent(db, job.id, key):
            return None
        cleaner = ProfileRepository.get(db, job.assigned_cleaner_id) or UserProfile(
            user_id=job.assigned_cleaner_id, role="cleaner"
        )
        result = await self.orchestrator.deliver(db, cleaner, rendered, job_id=job.id)
        ReminderLogRepository.record(db, job.id, key, cleaner.user_id)
        logger.info(f"⏰ {key} reminder sent to {cleaner.user_id} for job {job.id}")
        return result

    async def run_forever(self) -> None:
        logger.info(f"🚀 Starting cleaner reminder worker (every {self.interval:.0f}s)")
        while True:
            await self._sleep(self.interval)
            try:
                await self.run_checks()
            except Exception as e:
                logger.error(f"❌ Error in reminder worker loop: {e}")
