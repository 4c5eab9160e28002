"""
Typed per-state views of a job row.
Each variant requires exactly the fields its state implies, so a row that
reached a state without its prerequisites fails validation.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ...models_job import Job
from .errors import MissingPrerequisiteError


class JobRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    state: str
    sub_state: str = "NONE"
    version: int
    client_id: str
    assigned_cleaner_id: Optional[str] = None
    offered_cleaner_ids: List[str] = []
    address: str
    latitude: float
    longitude: float
    contracted_duration_minutes: int
    hourly_rate_credits: float

    assigned_at: Optional[datetime] = None
    en_route_at: Optional[datetime] = None
    check_in_at: Optional[datetime] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    before_photos_count: int = 0
    after_photos_count: int = 0
    max_billable_minutes: Optional[int] = None
    max_billable_credits: Optional[float] = None
    approved_extra_minutes: int = 0
    actual_minutes_worked: Optional[int] = None
    billable_minutes: Optional[int] = None


class OfferedJob(JobRecord):
    state: Literal["OFFERED"]


class AssignedJob(JobRecord):
    state: Literal["ASSIGNED"]
    assigned_cleaner_id: str
    assigned_at: datetime


class EnRouteJob(AssignedJob):
    state: Literal["EN_ROUTE"]
    en_route_at: datetime


class ArrivedJob(EnRouteJob):
    state: Literal["ARRIVED"]
    check_in_at: datetime
    check_in_lat: float
    check_in_lng: float


class InProgressJob(ArrivedJob):
    state: Literal["IN_PROGRESS"]
    start_at: datetime
    max_billable_minutes: int
    max_billable_credits: float


class AwaitingReviewJob(InProgressJob):
    state: Literal["AWAITING_CLIENT_REVIEW"]
    end_at: datetime
    actual_minutes_worked: int
    billable_minutes: int
    final_credits_charged: float


class DisputedJob(AwaitingReviewJob):
    state: Literal["DISPUTED"]
    disputed_at: datetime
    dispute_opened_by: str
    dispute_reason: str


class UnderReviewJob(DisputedJob):
    state: Literal["UNDER_REVIEW"]


class CompletedJob(AwaitingReviewJob):
    state: Literal["COMPLETED_APPROVED"]
    approved_at: datetime


class CancelledJob(JobRecord):
    state: Literal["CANCELLED"]
    cancelled_at: datetime
    cancelled_by: str
    cancellation_reason: str


AnyJobRecord = Annotated[
    Union[
        OfferedJob,
        AssignedJob,
        EnRouteJob,
        ArrivedJob,
        InProgressJob,
        AwaitingReviewJob,
        DisputedJob,
        UnderReviewJob,
        CompletedJob,
        CancelledJob,
    ],
    Field(discriminator="state"),
]

_record_adapter = TypeAdapter(AnyJobRecord)


def job_to_dict(job: Job) -> dict:
    return {column.name: getattr(job, column.name) for column in Job.__table__.columns}


def to_record(job: Job):
    """Validate a job row into its state's variant"""
    try:
        return _record_adapter.validate_python(job_to_dict(job))
    except ValidationError as e:
        missing = sorted({str(err["loc"][-1]) for err in e.errors()})
        raise MissingPrerequisiteError(
            f"Job {job.id} in state {job.state} is missing: {', '.join(missing)}", job.id
        ) from e
