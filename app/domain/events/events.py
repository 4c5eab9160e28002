"""
Domain Events
One immutable record per significant job lifecycle fact
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ...shared.timekeeping import utcnow


class EventKind(str, Enum):
    JOB_OFFERED = "JOB_OFFERED"
    JOB_ASSIGNED = "JOB_ASSIGNED"
    CLEANER_EN_ROUTE = "CLEANER_EN_ROUTE"
    CLEANER_ARRIVED = "CLEANER_ARRIVED"
    JOB_STARTED = "JOB_STARTED"
    BEFORE_PHOTO_UPLOADED = "BEFORE_PHOTO_UPLOADED"
    AFTER_PHOTO_UPLOADED = "AFTER_PHOTO_UPLOADED"
    EXTRA_TIME_REQUESTED = "EXTRA_TIME_REQUESTED"
    EXTRA_TIME_APPROVED = "EXTRA_TIME_APPROVED"
    EXTRA_TIME_DENIED = "EXTRA_TIME_DENIED"
    JOB_COMPLETED = "JOB_COMPLETED"
    CLIENT_APPROVED = "CLIENT_APPROVED"
    DISPUTE_OPENED = "DISPUTE_OPENED"
    DISPUTE_REVIEW_STARTED = "DISPUTE_REVIEW_STARTED"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    JOB_CANCELLED = "JOB_CANCELLED"
    RESCHEDULE_REQUESTED = "RESCHEDULE_REQUESTED"


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class DomainEvent(BaseModel):
    """Base event - carries the job id and who caused it"""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    job_id: str
    actor_id: Optional[str] = None
    urgent: bool = False
    occurred_at: datetime = Field(default_factory=utcnow)


class JobOffered(DomainEvent):
    kind: Literal[EventKind.JOB_OFFERED] = EventKind.JOB_OFFERED
    cleaner_ids: List[str]


class JobAssigned(DomainEvent):
    kind: Literal[EventKind.JOB_ASSIGNED] = EventKind.JOB_ASSIGNED
    cleaner_id: str


class CleanerEnRoute(DomainEvent):
    kind: Literal[EventKind.CLEANER_EN_ROUTE] = EventKind.CLEANER_EN_ROUTE
    cleaner_id: str
    location: Optional[GeoPoint] = None
    eta_minutes: int = 15


class CleanerArrived(DomainEvent):
    kind: Literal[EventKind.CLEANER_ARRIVED] = EventKind.CLEANER_ARRIVED
    cleaner_id: str
    location: GeoPoint
    distance_m: float


class JobStarted(DomainEvent):
    kind: Literal[EventKind.JOB_STARTED] = EventKind.JOB_STARTED
    cleaner_id: str
    location: GeoPoint
    max_billable_minutes: int


class BeforePhotoUploaded(DomainEvent):
    kind: Literal[EventKind.BEFORE_PHOTO_UPLOADED] = EventKind.BEFORE_PHOTO_UPLOADED
    photo_id: str
    count: int


class AfterPhotoUploaded(DomainEvent):
    kind: Literal[EventKind.AFTER_PHOTO_UPLOADED] = EventKind.AFTER_PHOTO_UPLOADED
    photo_id: str
    count: int


class ExtraTimeRequested(DomainEvent):
    kind: Literal[EventKind.EXTRA_TIME_REQUESTED] = EventKind.EXTRA_TIME_REQUESTED
    cleaner_id: str
    minutes_requested: int
    reason: str
    hourly_rate_credits: float


class ExtraTimeApproved(DomainEvent):
    kind: Literal[EventKind.EXTRA_TIME_APPROVED] = EventKind.EXTRA_TIME_APPROVED
    minutes_approved: int


class ExtraTimeDenied(DomainEvent):
    kind: Literal[EventKind.EXTRA_TIME_DENIED] = EventKind.EXTRA_TIME_DENIED
    reason: Optional[str] = None


class JobCompleted(DomainEvent):
    kind: Literal[EventKind.JOB_COMPLETED] = EventKind.JOB_COMPLETED
    location: GeoPoint
    minutes_worked: int
    billable_minutes: int


class ClientApproved(DomainEvent):
    kind: Literal[EventKind.CLIENT_APPROVED] = EventKind.CLIENT_APPROVED
    rating: int
    tip_credits: Optional[float] = None


class DisputeOpened(DomainEvent):
    kind: Literal[EventKind.DISPUTE_OPENED] = EventKind.DISPUTE_OPENED
    opened_by: Literal["client", "cleaner"]
    reason: str


class DisputeReviewStarted(DomainEvent):
    kind: Literal[EventKind.DISPUTE_REVIEW_STARTED] = EventKind.DISPUTE_REVIEW_STARTED


class DisputeResolved(DomainEvent):
    kind: Literal[EventKind.DISPUTE_RESOLVED] = EventKind.DISPUTE_RESOLVED
    resolution: Literal["approve", "refund"]
    notes: Optional[str] = None


class JobCancelled(DomainEvent):
    kind: Literal[EventKind.JOB_CANCELLED] = EventKind.JOB_CANCELLED
    cancelled_by: str
    reason: str


class RescheduleRequested(DomainEvent):
    kind: Literal[EventKind.RESCHEDULE_REQUESTED] = EventKind.RESCHEDULE_REQUESTED
    requested_by: str
    new_date: str
    new_time: str


AnyDomainEvent = Annotated[
    Union[
        JobOffered,
        JobAssigned,
        CleanerEnRoute,
        CleanerArrived,
        JobStarted,
        BeforePhotoUploaded,
        AfterPhotoUploaded,
        ExtraTimeRequested,
        ExtraTimeApproved,
        ExtraTimeDenied,
        JobCompleted,
        ClientApproved,
        DisputeOpened,
        DisputeReviewStarted,
        DisputeResolved,
        JobCancelled,
        RescheduleRequested,
    ],
    Field(discriminator="kind"),
]
