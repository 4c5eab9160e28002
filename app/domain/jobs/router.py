"""Job router - FastAPI endpoints for lifecycle transitions"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from .errors import TransitionError, TransitionErrorReason
from .schemas import (
    ApproveCompletionRequest,
    CancelRequest,
    CompleteJobRequest,
    DisputeRequest,
    EnRouteRequest,
    ExtraTimeApproval,
    ExtraTimeDenial,
    ExtraTimeRequest,
    JobOfferRequest,
    JobResponse,
    LocationRequest,
    PhotoRequest,
    RescheduleRequest,
    ResolveDisputeRequest,
)
from .service import Actor, JobLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])

STATUS_BY_REASON = {
    TransitionErrorReason.JOB_NOT_FOUND: 404,
    TransitionErrorReason.UNAUTHORIZED_ACTOR: 403,
    TransitionErrorReason.WRONG_STATE: 409,
    TransitionErrorReason.CONCURRENT_MODIFICATION: 409,
    TransitionErrorReason.OUT_OF_GEOFENCE: 422,
    TransitionErrorReason.MISSING_PREREQUISITE: 422,
    TransitionErrorReason.INVALID_INPUT: 422,
}


async def transition_error_handler(request: Request, exc: TransitionError):
    status_code = STATUS_BY_REASON.get(exc.reason, 400)
    logger.warning(f"⚠️ {request.url.path} rejected [{exc.reason.value}]: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


def get_job_service(request: Request, db: Session = Depends(get_db)) -> JobLifecycleService:
    """Dependency injection for JobLifecycleService"""
    return JobLifecycleService(db, request.app.state.event_bus)


@router.post("", response_model=JobResponse, status_code=201)
async def offer_job(
    data: JobOfferRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    """Create a job and offer it to cleaners"""
    return await service.offer_job(actor, **data.model_dump())


@router.get("", response_model=List[JobResponse])
async def list_jobs(
    state: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return service.list_jobs(actor, state=state)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return service.get_job(job_id, actor)


@router.post("/{job_id}/accept", response_model=JobResponse)
async def accept_job(
    job_id: str,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.accept_job(job_id, actor)


@router.post("/{job_id}/en-route", response_model=JobResponse)
async def mark_en_route(
    job_id: str,
    data: EnRouteRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.mark_en_route(job_id, actor, data.latitude, data.longitude)


@router.post("/{job_id}/arrive", response_model=JobResponse)
async def mark_arrived(
    job_id: str,
    data: LocationRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    """Check in - must be within the geofence of the job address"""
    return await service.mark_arrived(job_id, actor, data.latitude, data.longitude)


@router.post("/{job_id}/start", response_model=JobResponse)
async def start_job(
    job_id: str,
    data: LocationRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.start_job(job_id, actor, data.latitude, data.longitude)


@router.post("/{job_id}/photos", response_model=JobResponse)
async def record_photo(
    job_id: str,
    data: PhotoRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.record_photo(job_id, actor, data.phase, data.photo_id)


@router.post("/{job_id}/extra-time", response_model=JobResponse)
async def request_extra_time(
    job_id: str,
    data: ExtraTimeRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.request_extra_time(job_id, actor, data.minutes, data.reason)


@router.post("/{job_id}/extra-time/approve", response_model=JobResponse)
async def approve_extra_time(
    job_id: str,
    data: ExtraTimeApproval,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.approve_extra_time(job_id, actor, data.minutes)


@router.post("/{job_id}/extra-time/deny", response_model=JobResponse)
async def deny_extra_time(
    job_id: str,
    data: ExtraTimeDenial,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.deny_extra_time(job_id, actor, data.reason)


@router.post("/{job_id}/complete", response_model=JobResponse)
async def complete_job(
    job_id: str,
    data: CompleteJobRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.complete_job(job_id, actor, data.latitude, data.longitude, data.notes)


@router.post("/{job_id}/approve", response_model=JobResponse)
async def approve_completion(
    job_id: str,
    data: ApproveCompletionRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.approve_completion(job_id, actor, data.rating, data.tip_credits)


@router.post("/{job_id}/dispute", response_model=JobResponse)
async def open_dispute(
    job_id: str,
    data: DisputeRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.open_dispute(job_id, actor, data.reason)


@router.post("/{job_id}/dispute/review", response_model=JobResponse)
async def begin_dispute_review(
    job_id: str,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.begin_dispute_review(job_id, actor)


@router.post("/{job_id}/dispute/resolve", response_model=JobResponse)
async def resolve_dispute(
    job_id: str,
    data: ResolveDisputeRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.resolve_dispute(job_id, actor, data.resolution, data.notes)


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(
    job_id: str,
    data: CancelRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.cancel_job(job_id, actor, data.reason)


@router.post("/{job_id}/reschedule", response_model=JobResponse)
async def request_reschedule(
    job_id: str,
    data: RescheduleRequest,
    actor: Actor = Depends(get_current_actor),
    service: JobLifecycleService = Depends(get_job_service),
):
    return await service.request_reschedule(job_id, actor, data.new_date, data.new_time)
