"""
Job Lifecycle Service
Validates and applies every job transition, then publishes one domain event per success.

Every operation checks, in order: current state, actor, input, prerequisites, geofence.
A rejected attempt raises a TransitionError and writes nothing.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_ETA_MINUTES, GEOFENCE_RADIUS_METERS, MIN_PHOTOS_PER_PHASE
from ...models_job import Job
from ...shared.geofence import GeofenceCheck, check_geofence
from ...shared.timekeeping import billable_minutes, credits_for_minutes, utcnow, worked_minutes
from ...shared.validators import validate_coordinates
from ..events import events as ev
from ..events.bus import EventBus
from .errors import (
    GeofenceError,
    InvalidInputError,
    JobNotFoundError,
    MissingPrerequisiteError,
    UnauthorizedActorError,
    WrongStateError,
)
from .records import to_record
from .repository import JobRepository
from .states import (
    DISPUTE_RESOLUTION_TARGETS,
    TRANSITIONS,
    ActorRole,
    JobState,
    JobSubState,
)

logger = logging.getLogger(__name__)

DEFAULT_CREDITS_PER_HOUR = 50.0
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Cancelling while the cleaner is travelling or on site needs immediate attention
URGENT_CANCELLATION_STATES = {JobState.EN_ROUTE, JobState.ARRIVED, JobState.IN_PROGRESS}


@dataclass(frozen=True)
class Actor:
    id: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


class JobLifecycleService:
    """State machine for cleaning jobs"""

    def __init__(
        self,
        db: Session,
        bus: EventBus,
        clock: Callable = utcnow,
        geofence_radius_m: float = GEOFENCE_RADIUS_METERS,
        min_photos_per_phase: int = MIN_PHOTOS_PER_PHASE,
    ):
        self.db = db
        self.bus = bus
        self.clock = clock
        self.geofence_radius_m = geofence_radius_m
        self.min_photos_per_phase = min_photos_per_phase

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _load(self, job_id: str) -> Job:
        job = JobRepository.get(self.db, job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    @staticmethod
    def _require_state(job: Job, operation: str) -> None:
        sources = TRANSITIONS[operation].sources
        if JobState(job.state) not in sources:
            raise WrongStateError(job.id, operation, job.state, sources)

    @staticmethod
    def _require_actor(job: Job, actor: Actor, *allowed: str) -> None:
        """allowed: any of 'assigned_cleaner', 'offered_cleaner', 'client', 'admin'"""
        if "admin" in allowed and actor.is_admin:
            return
        if "client" in allowed and actor.role == ActorRole.CLIENT and actor.id == job.client_id:
            return
        if actor.role == ActorRole.CLEANER:
            if "assigned_cleaner" in allowed and actor.id == job.assigned_cleaner_id:
                return
            if (
                "offered_cleaner" in allowed
                and job.assigned_cleaner_id is None
                and actor.id in (job.offered_cleaner_ids or [])
            ):
                return
        raise UnauthorizedActorError(
            f"{actor.role.value} {actor.id} is not allowed to modify job {job.id}", job.id
        )

    @staticmethod
    def _require_record(job: Job) -> None:
        # Raises MissingPrerequisiteError when the row lacks fields its state implies
        to_record(job)

    @staticmethod
    def _coordinates(job: Job, latitude: Optional[float], longitude: Optional[float]):
        try:
            return validate_coordinates(latitude, longitude)
        except ValueError as e:
            raise InvalidInputError(str(e), job.id) from e

    def _require_within_geofence(self, job: Job, latitude: float, longitude: float) -> GeofenceCheck:
        check = check_geofence(job.latitude, job.longitude, latitude, longitude, self.geofence_radius_m)
        if not check.within:
            logger.warning(
                f"⚠️ Geofence rejected for job {job.id}: {check.distance_m:.1f}m > {check.radius_m:.0f}m"
            )
            raise GeofenceError(job.id, check.distance_m, check.radius_m)
        return check

    async def _apply(self, job: Job, changes: dict, event: ev.DomainEvent) -> Job:
        """Persist with compare-and-set, then publish. The write is committed before any handler runs."""
        job = JobRepository.update(self.db, job, job.version, **changes)
        logger.info(f"✅ Job {job.id} -> {job.state} ({event.kind.value})")
        await self.bus.emit(event)
        return job

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_job(self, job_id: str, actor: Optional[Actor] = None) -> Job:
        job = self._load(job_id)
        if actor is not None:
            self._require_actor(job, actor, "client", "assigned_cleaner", "offered_cleaner", "admin")
        return job

    def list_jobs(self, actor: Actor, state: Optional[str] = None) -> List[Job]:
        if actor.is_admin:
            return JobRepository.filter(self.db, state=state)
        if actor.role == ActorRole.CLIENT:
            return JobRepository.filter(self.db, client_id=actor.id, state=state)
        return JobRepository.filter(self.db, assigned_cleaner_id=actor.id, state=state)

    # ------------------------------------------------------------------
    # Offer / assignment
    # ------------------------------------------------------------------

    async def offer_job(
        self,
        actor: Actor,
        client_id: str,
        address: str,
        latitude: float,
        longitude: float,
        contracted_duration_minutes: int,
        cleaner_ids: List[str],
        hourly_rate_credits: float = DEFAULT_CREDITS_PER_HOUR,
        assigned_cleaner_id: Optional[str] = None,
        scheduled_date: Optional[str] = None,
        scheduled_time: Optional[str] = None,
        requires_before_photos: bool = True,
        requires_after_photos: bool = True,
    ) -> Job:
        """Create a job in OFFERED and notify the offered cleaners"""
        if not actor.is_admin and not (actor.role == ActorRole.CLIENT and actor.id == client_id):
            raise UnauthorizedActorError(f"{actor.role.value} {actor.id} cannot create jobs for {client_id}")

        try:
            latitude, longitude = validate_coordinates(latitude, longitude)
        except ValueError as e:
            raise InvalidInputError(str(e)) from e
        if contracted_duration_minutes is None or contracted_duration_minutes <= 0:
            raise InvalidInputError("Contracted duration must be positive")
        if hourly_rate_credits is None or hourly_rate_credits < 0:
            raise InvalidInputError("Hourly rate cannot be negative")
        if not address or not address.strip():
            raise InvalidInputError("Address is required")

        offered = list(dict.fromkeys(cleaner_ids or []))
        if assigned_cleaner_id and assigned_cleaner_id not in offered:
            offered.append(assigned_cleaner_id)
        if not offered:
            raise InvalidInputError("At least one cleaner must be offered the job")

        job = JobRepository.create(
            self.db,
            state=JobState.OFFERED.value,
            sub_state=JobSubState.NONE.value,
            version=1,
            client_id=client_id,
            assigned_cleaner_id=assigned_cleaner_id,
            offered_cleaner_ids=offered,
            address=address.strip(),
            latitude=latitude,
            longitude=longitude,
            contracted_duration_minutes=contracted_duration_minutes,
            hourly_rate_credits=hourly_rate_credits,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            requires_before_photos=requires_before_photos,
            requires_after_photos=requires_after_photos,
        )
        logger.info(f"✅ Job {job.id} offered to {len(offered)} cleaner(s)")
        await self.bus.emit(ev.JobOffered(job_id=job.id, actor_id=actor.id, cleaner_ids=offered))
        return job

    async def accept_job(self, job_id: str, actor: Actor) -> Job:
        job = self._load(job_id)
        self._require_state(job, "accept_job")
        self._require_actor(job, actor, "assigned_cleaner", "offered_cleaner")

        now = self.clock()
        return await self._apply(
            job,
            {
                "state": JobState.ASSIGNED.value,
                "assigned_cleaner_id": actor.id,
                "assigned_at": now,
            },
            ev.JobAssigned(job_id=job.id, actor_id=actor.id, cleaner_id=actor.id, occurred_at=now),
        )

    # ------------------------------------------------------------------
    # Travel and on-site
    # ------------------------------------------------------------------

    async def mark_en_route(
        self,
        job_id: str,
        actor: Actor,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Job:
        job = self._load(job_id)
        self._require_state(job, "mark_en_route")
        self._require_actor(job, actor, "assigned_cleaner")

        location = None
        if latitude is not None or longitude is not None:
            latitude, longitude = self._coordinates(job, latitude, longitude)
            location = ev.GeoPoint(lat=latitude, lng=longitude)
        self._require_record(job)

        now = self.clock()
        return await self._apply(
            job,
            {
                "state": JobState.EN_ROUTE.value,
                "en_route_at": now,
                "en_route_lat": latitude,
                "en_route_lng": longitude,
            },
            ev.CleanerEnRoute(
                job_id=job.id,
                actor_id=actor.id,
                cleaner_id=actor.id,
                location=location,
                eta_minutes=DEFAULT_ETA_MINUTES,
                occurred_at=now,
            ),
        )

    async def mark_arrived(self, job_id: str, actor: Actor, latitude: float, longitude: float) -> Job:
        job = self._load(job_id)
        self._require_state(job, "mark_arrived")
        self._require_actor(job, actor, "assigned_cleaner")
        latitude, longitude = self._coordinates(job, latitude, longitude)
        self._require_record(job)
        check = self._require_within_geofence(job, latitude, longitude)

        now = self.clock()
        return await self._apply(
            job,
            {
                "state": JobState.ARRIVED.value,
                "check_in_at": now,
                "check_in_lat": latitude,
                "check_in_lng": longitude,
            },
            ev.CleanerArrived(
                job_id=job.id,
                actor_id=actor.id,
                cleaner_id=actor.id,
                location=ev.GeoPoint(lat=latitude, lng=longitude),
                distance_m=check.distance_m,
                occurred_at=now,
            ),
        )

    async def start_job(self, job_id: str, actor: Actor, latitude: float, longitude: float) -> Job:
        job = self._load(job_id)
        self._require_state(job, "start_job")
        self._require_actor(job, actor, "assigned_cleaner")
        latitude, longitude = self._coordinates(job, latitude, longitude)
        self._require_record(job)
        self._require_within_geofence(job, latitude, longitude)

        now = self.clock()
        max_minutes = job.contracted_duration_minutes
        return await self._apply(
            job,
            {
                "state": JobState.IN_PROGRESS.value,
                "start_at": now,
                "start_lat": latitude,
                "start_lng": longitude,
                "max_billable_minutes": max_minutes,
                "max_billable_credits": credits_for_minutes(max_minutes, job.hourly_rate_credits),
            },
            ev.JobStarted(
                job_id=job.id,
                actor_id=actor.id,
                cleaner_id=actor.id,
                location=ev.GeoPoint(lat=latitude, lng=longitude),
                max_billable_minutes=max_minutes,
                occurred_at=now,
            ),
        )

    async def record_photo(self, job_id: str, actor: Actor, phase: str, photo_id: str) -> Job:
        """Count a before/after photo. Never changes state."""
        job = self._load(job_id)
        self._require_state(job, "record_photo")
        self._require_actor(job, actor, "assigned_cleaner")
        if phase not in ("before", "after"):
            raise InvalidInputError(f"Unknown photo phase: {phase}", job.id)
        if not photo_id:
            raise InvalidInputError("Photo id is required", job.id)

        if phase == "before":
            count = (job.before_photos_count or 0) + 1
            changes = {"before_photos_count": count}
            event = ev.BeforePhotoUploaded(job_id=job.id, actor_id=actor.id, photo_id=photo_id, count=count)
        else:
            count = (job.after_photos_count or 0) + 1
            changes = {"after_photos_count": count}
            event = ev.AfterPhotoUploaded(job_id=job.id, actor_id=actor.id, photo_id=photo_id, count=count)

        return await self._apply(job, changes, event)

    # ------------------------------------------------------------------
    # Extra time (sub-state only)
    # ------------------------------------------------------------------

    async def request_extra_time(self, job_id: str, actor: Actor, minutes: int, reason: str) -> Job:
        job = self._load(job_id)
        self._require_state(job, "request_extra_time")
        self._require_actor(job, actor, "assigned_cleaner")
        if not minutes or minutes <= 0:
            raise InvalidInputError("Requested minutes must be positive", job.id)
        if not reason or not reason.strip():
            raise InvalidInputError("A reason is required for extra time", job.id)
        if job.has_pending_extra_time_request:
            raise InvalidInputError("An extra time request is already pending", job.id)

        return await self._apply(
            job,
            {
                "sub_state": JobSubState.EXTRA_TIME_REQUESTED.value,
                "extra_time_requested_minutes": minutes,
                "extra_time_reason": reason.strip(),
                "has_pending_extra_time_request": True,
            },
            ev.ExtraTimeRequested(
                job_id=job.id,
                actor_id=actor.id,
                cleaner_id=actor.id,
                minutes_requested=minutes,
                reason=reason.strip(),
                hourly_rate_credits=job.hourly_rate_credits,
            ),
        )

    async def approve_extra_time(self, job_id: str, actor: Actor, minutes: Optional[int] = None) -> Job:
        """Client approves all or part of the pending request. Raises the ceiling by the approved minutes."""
        job = self._load(job_id)
        self._require_state(job, "approve_extra_time")
        self._require_actor(job, actor, "client")
        if minutes is not None and minutes <= 0:
            raise InvalidInputError("Approved minutes must be positive", job.id)
        if not job.has_pending_extra_time_request:
            raise MissingPrerequisiteError("No pending extra time request", job.id)
        requested = job.extra_time_requested_minutes or 0
        approved = requested if minutes is None else minutes
        if approved > requested:
            raise InvalidInputError(
                f"Cannot approve {approved} minutes, only {requested} were requested", job.id
            )

        return await self._apply(
            job,
            {
                "sub_state": JobSubState.EXTRA_TIME_APPROVED.value,
                "approved_extra_minutes": (job.approved_extra_minutes or 0) + approved,
                "has_pending_extra_time_request": False,
            },
            ev.ExtraTimeApproved(job_id=job.id, actor_id=actor.id, minutes_approved=approved),
        )

    async def deny_extra_time(self, job_id: str, actor: Actor, reason: Optional[str] = None) -> Job:
        job = self._load(job_id)
        self._require_state(job, "deny_extra_time")
        self._require_actor(job, actor, "client")
        if not job.has_pending_extra_time_request:
            raise MissingPrerequisiteError("No pending extra time request", job.id)

        return await self._apply(
            job,
            {
                "sub_state": JobSubState.EXTRA_TIME_DENIED.value,
                "has_pending_extra_time_request": False,
            },
            ev.ExtraTimeDenied(job_id=job.id, actor_id=actor.id, reason=reason),
        )

    # ------------------------------------------------------------------
    # Completion and review
    # ------------------------------------------------------------------

    async def complete_job(
        self,
        job_id: str,
        actor: Actor,
        latitude: float,
        longitude: float,
        notes: Optional[str] = None,
    ) -> Job:
        job = self._load(job_id)
        self._require_state(job, "complete_job")
        self._require_actor(job, actor, "assigned_cleaner")
        latitude, longitude = self._coordinates(job, latitude, longitude)
        # InProgressJob requires check_in_at and start_at
        self._require_record(job)
        self._require_photos(job)
        self._require_within_geofence(job, latitude, longitude)

        now = self.clock()
        worked = worked_minutes(job.start_at, now)
        billable = billable_minutes(worked, job.max_billable_minutes, job.approved_extra_minutes)
        logger.info(
            f"Job {job.id} billing: worked={worked}m ceiling={job.max_billable_minutes}m "
            f"+{job.approved_extra_minutes or 0}m billable={billable}m"
        )
        return await self._apply(
            job,
            {
                "state": JobState.AWAITING_CLIENT_REVIEW.value,
                "end_at": now,
                "end_lat": latitude,
                "end_lng": longitude,
                "actual_minutes_worked": worked,
                "billable_minutes": billable,
                "final_credits_charged": credits_for_minutes(billable, job.hourly_rate_credits),
                "sub_state": JobSubState.NONE.value,
                "has_pending_extra_time_request": False,
                "cleaner_notes": notes,
            },
            ev.JobCompleted(
                job_id=job.id,
                actor_id=actor.id,
                location=ev.GeoPoint(lat=latitude, lng=longitude),
                minutes_worked=worked,
                billable_minutes=billable,
                occurred_at=now,
            ),
        )

    def _require_photos(self, job: Job) -> None:
        missing = []
        if job.requires_before_photos and (job.before_photos_count or 0) < self.min_photos_per_phase:
            missing.append(f"before photos ({job.before_photos_count or 0}/{self.min_photos_per_phase})")
        if job.requires_after_photos and (job.after_photos_count or 0) < self.min_photos_per_phase:
            missing.append(f"after photos ({job.after_photos_count or 0}/{self.min_photos_per_phase})")
        if missing:
            raise MissingPrerequisiteError(f"Missing {', '.join(missing)}", job.id)

    async def approve_completion(
        self, job_id: str, actor: Actor, rating: int, tip_credits: Optional[float] = None
    ) -> Job:
        job = self._load(job_id)
        self._require_state(job, "approve_completion")
        self._require_actor(job, actor, "client")
        if rating is None or not 1 <= rating <= 5:
            raise InvalidInputError("Rating must be between 1 and 5", job.id)
        if tip_credits is not None and tip_credits < 0:
            raise InvalidInputError("Tip cannot be negative", job.id)
        self._require_record(job)

        now = self.clock()
        return await self._apply(
            job,
            {
                "state": JobState.COMPLETED_APPROVED.value,
                "sub_state": JobSubState.NONE.value,
                "approved_at": now,
                "client_rating": rating,
                "tip_credits": tip_credits,
            },
            ev.ClientApproved(
                job_id=job.id, actor_id=actor.id, rating=rating, tip_credits=tip_credits, occurred_at=now
            ),
        )

    async def open_dispute(self, job_id: str, actor: Actor, reason: str) -> Job:
        job = self._load(job_id)
        self._require_state(job, "open_dispute")
        self._require_actor(job, actor, "client", "assigned_cleaner")
        if not reason or not reason.strip():
            raise InvalidInputError("A reason is required to open a dispute", job.id)
        self._require_record(job)

        opened_by = "client" if actor.role == ActorRole.CLIENT else "cleaner"
        now = self.clock()
        return await self._apply(
            job,
            {
                "state": JobState.DISPUTED.value,
                "disputed_at": now,
                "dispute_opened_by": opened_by,
                "dispute_reason": reason.strip(),
            },
            ev.DisputeOpened(
                job_id=job.id, actor_id=actor.id, opened_by=opened_by, reason=reason.strip(), occurred_at=now
            ),
        )

    async def begin_dispute_review(self, job_id: str, actor: Actor) -> Job:
        job = self._load(job_id)
        self._require_state(job, "begin_dispute_review")
        self._require_actor(job, actor, "admin")

        return await self._apply(
            job,
            {"state": JobState.UNDER_REVIEW.value},
            ev.DisputeReviewStarted(job_id=job.id, actor_id=actor.id),
        )

    async def resolve_dispute(
        self, job_id: str, actor: Actor, resolution: str, notes: Optional[str] = None
    ) -> Job:
        job = self._load(job_id)
        self._require_state(job, "resolve_dispute")
        self._require_actor(job, actor, "admin")
        if resolution not in DISPUTE_RESOLUTION_TARGETS:
            raise InvalidInputError(f"Unknown resolution: {resolution}", job.id)

        now = self.clock()
        target = DISPUTE_RESOLUTION_TARGETS[resolution]
        changes = {
            "state": target.value,
            "sub_state": JobSubState.NONE.value,
            "dispute_resolution": resolution,
            "dispute_resolution_notes": notes,
            "dispute_resolved_at": now,
        }
        if target == JobState.COMPLETED_APPROVED:
            changes["approved_at"] = now
        else:
            changes["cancelled_at"] = now
            changes["cancelled_by"] = actor.id
            changes["cancellation_reason"] = notes or "Dispute resolved with refund"

        return await self._apply(
            job,
            changes,
            ev.DisputeResolved(
                job_id=job.id, actor_id=actor.id, resolution=resolution, notes=notes, occurred_at=now
            ),
        )

    # ------------------------------------------------------------------
    # Cancellation and reschedule
    # ------------------------------------------------------------------

    async def cancel_job(self, job_id: str, actor: Actor, reason: str) -> Job:
        job = self._load(job_id)
        self._require_state(job, "cancel_job")
        self._require_actor(job, actor, "assigned_cleaner", "client", "admin")
        if not reason or not reason.strip():
            raise InvalidInputError("A cancellation reason is required", job.id)

        now = self.clock()
        urgent = JobState(job.state) in URGENT_CANCELLATION_STATES
        return await self._apply(
            job,
            {
                "state": JobState.CANCELLED.value,
                "sub_state": JobSubState.NONE.value,
                "cancelled_at": now,
                "cancelled_by": actor.id,
                "cancellation_reason": reason.strip(),
                "has_pending_extra_time_request": False,
                "has_pending_reschedule_request": False,
            },
            ev.JobCancelled(
                job_id=job.id,
                actor_id=actor.id,
                cancelled_by=actor.role.value,
                reason=reason.strip(),
                urgent=urgent,
                occurred_at=now,
            ),
        )

    async def request_reschedule(self, job_id: str, actor: Actor, new_date: str, new_time: str) -> Job:
        job = self._load(job_id)
        self._require_state(job, "request_reschedule")
        self._require_actor(job, actor, "client", "assigned_cleaner")
        if not new_date or not DATE_PATTERN.match(new_date):
            raise InvalidInputError("Date must be YYYY-MM-DD", job.id)
        if not new_time or not TIME_PATTERN.match(new_time):
            raise InvalidInputError("Time must be HH:MM", job.id)

        return await self._apply(
            job,
            {
                "sub_state": JobSubState.RESCHEDULE_REQUESTED.value,
                "has_pending_reschedule_request": True,
                "reschedule_requested_by": actor.id,
                "reschedule_date": new_date,
                "reschedule_time": new_time,
            },
            ev.RescheduleRequested(
                job_id=job.id,
                actor_id=actor.id,
                requested_by=actor.role.value,
                new_date=new_date,
                new_time=new_time,
            ),
        )
