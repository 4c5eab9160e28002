"""Job domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobOfferRequest(BaseModel):
    client_id: str
    address: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    contracted_duration_minutes: int = Field(gt=0)
    hourly_rate_credits: float = Field(default=50.0, ge=0)
    cleaner_ids: List[str] = []
    assigned_cleaner_id: Optional[str] = None
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    requires_before_photos: bool = True
    requires_after_photos: bool = True


class LocationRequest(BaseModel):
    latitude: float
    longitude: float


class EnRouteRequest(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CompleteJobRequest(LocationRequest):
    notes: Optional[str] = None


class PhotoRequest(BaseModel):
    phase: Literal["before", "after"]
    photo_id: str


class ExtraTimeRequest(BaseModel):
    minutes: int = Field(gt=0)
    reason: str


class ExtraTimeApproval(BaseModel):
    minutes: Optional[int] = Field(default=None, gt=0)


class ExtraTimeDenial(BaseModel):
    reason: Optional[str] = None


class ApproveCompletionRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    tip_credits: Optional[float] = Field(default=None, ge=0)


class DisputeRequest(BaseModel):
    reason: str


class ResolveDisputeRequest(BaseModel):
    resolution: Literal["approve", "refund"]
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: str


class RescheduleRequest(BaseModel):
    new_date: str
    new_time: str


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    state: str
    sub_state: str
    version: int
    client_id: str
    assigned_cleaner_id: Optional[str] = None
    offered_cleaner_ids: List[str] = []
    address: str
    latitude: float
    longitude: float
    contracted_duration_minutes: int
    hourly_rate_credits: float
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    assigned_at: Optional[datetime] = None
    en_route_at: Optional[datetime] = None
    check_in_at: Optional[datetime] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    before_photos_count: int = 0
    after_photos_count: int = 0
    max_billable_minutes: Optional[int] = None
    max_billable_credits: Optional[float] = None
    approved_extra_minutes: int = 0
    extra_time_requested_minutes: Optional[int] = None
    has_pending_extra_time_request: bool = False
    has_pending_reschedule_request: bool = False
    actual_minutes_worked: Optional[int] = None
    billable_minutes: Optional[int] = None
    final_credits_charged: Optional[float] = None
    client_rating: Optional[int] = None
    dispute_reason: Optional[str] = None
    dispute_resolution: Optional[str] = None
    cancellation_reason: Optional[str] = None
