"""Clock helpers: worked time, billing ceiling, schedules and quiet hours"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def worked_minutes(start_at: Optional[datetime], end_at: Optional[datetime]) -> int:
    """Whole minutes between start and end, floored. Missing or reversed times yield 0."""
    if start_at is None or end_at is None:
        return 0
    seconds = (end_at - start_at).total_seconds()
    if seconds <= 0:
        return 0
    return math.floor(seconds / 60)


def billable_minutes(worked: int, max_billable: int, approved_extra: int = 0) -> int:
    """Worked minutes capped at the contracted ceiling plus approved extra time"""
    ceiling = (max_billable or 0) + (approved_extra or 0)
    return max(0, min(worked, ceiling))


def credits_for_minutes(minutes: int, hourly_rate_credits: float) -> float:
    return round(minutes / 60 * hourly_rate_credits, 2)


def extra_time_cost(minutes: int, hourly_rate: float) -> str:
    """Cost of extra minutes formatted for messages, e.g. '8.40'"""
    return f"{hourly_rate / 60 * minutes:.2f}"


def scheduled_start_utc(scheduled_date: Optional[str], scheduled_time: Optional[str], tz_name: str) -> Optional[datetime]:
    """Booking date and HH:MM in the local zone as naive UTC. None when either part is missing or malformed."""
    if not scheduled_date or not scheduled_time:
        return None
    try:
        local = datetime.strptime(f"{scheduled_date} {scheduled_time}", "%Y-%m-%d %H:%M")
    except ValueError:
        return None
    return local.replace(tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class QuietHours:
    """
    Local-time window when SMS and push are held back.

    A window whose start is after its end wraps midnight (21 to 8 covers
    21:00-07:59). Equal start and end means no quiet hours.
    """

    start_hour: int = 21
    end_hour: int = 8
    tz_name: str = "UTC"
    clock: Callable[[], datetime] = field(default=utcnow)

    def is_quiet(self, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        hour = now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(self.tz_name)).hour
        if self.start_hour == self.end_hour:
            return False
        if self.start_hour < self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour
