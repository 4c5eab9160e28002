import pytest

from app.domain.events.events import EventKind
from app.domain.jobs.errors import (
    ConcurrentTransitionError,
    GeofenceError,
    InvalidInputError,
    JobNotFoundError,
    MissingPrerequisiteError,
    TransitionErrorReason,
    UnauthorizedActorError,
    WrongStateError,
)
from app.domain.jobs.repository import JobRepository
from app.domain.jobs.service import Actor
from app.domain.jobs.states import ActorRole, JobState, JobSubState

from .conftest import ADMIN, CLEANER, CLIENT, JOB_LAT, JOB_LNG, OTHER_CLEANER, north_of


def snapshot(service, job_id):
    job = service.get_job(job_id)
    return job.state, job.sub_state, job.version


class TestOfferAndAccept:
    async def test_offer_creates_job_and_emits(self, make_job, recorder):
        job = await make_job()

        assert job.state == JobState.OFFERED.value
        assert job.version == 1
        assert job.offered_cleaner_ids == [CLEANER.id, OTHER_CLEANER.id]
        assert recorder.kinds() == [EventKind.JOB_OFFERED]
        assert recorder.events[0].cleaner_ids == [CLEANER.id, OTHER_CLEANER.id]

    async def test_offer_rejects_bad_coordinates(self, service):
        with pytest.raises(InvalidInputError):
            await service.offer_job(
                CLIENT,
                client_id=CLIENT.id,
                address="Nowhere",
                latitude=120.0,
                longitude=0.0,
                contracted_duration_minutes=60,
                cleaner_ids=[CLEANER.id],
            )

    async def test_offer_for_another_client_is_unauthorized(self, service):
        with pytest.raises(UnauthorizedActorError):
            await service.offer_job(
                CLIENT,
                client_id="client-9",
                address="1 Centre St",
                latitude=JOB_LAT,
                longitude=JOB_LNG,
                contracted_duration_minutes=60,
                cleaner_ids=[CLEANER.id],
            )

    async def test_first_offered_cleaner_wins(self, service, make_job):
        job = await make_job()
        job = await service.accept_job(job.id, CLEANER)
        assert job.assigned_cleaner_id == CLEANER.id

        with pytest.raises(WrongStateError):
            await service.accept_job(job.id, OTHER_CLEANER)
        assert service.get_job(job.id).assigned_cleaner_id == CLEANER.id

    async def test_cleaner_not_offered_cannot_accept(self, service, make_job):
        job = await make_job()
        stranger = Actor(id="cleaner-99", role=ActorRole.CLEANER)
        with pytest.raises(UnauthorizedActorError) as exc:
            await service.accept_job(job.id, stranger)
        assert exc.value.reason == TransitionErrorReason.UNAUTHORIZED_ACTOR
        assert service.get_job(job.id).state == JobState.OFFERED.value

    async def test_unknown_job(self, service):
        with pytest.raises(JobNotFoundError) as exc:
            await service.accept_job("missing", CLEANER)
        assert exc.value.to_dict()["reason"] == "JOB_NOT_FOUND"


class TestArrivalAndStart:
    async def test_arrival_within_geofence(self, service, make_job, recorder, clock):
        job = await make_job("EN_ROUTE")
        lat, lng = north_of(120)

        job = await service.mark_arrived(job.id, CLEANER, lat, lng)

        assert job.state == JobState.ARRIVED.value
        assert job.check_in_at == clock.now
        assert job.check_in_lat == pytest.approx(lat)
        event = recorder.events[-1]
        assert event.kind == EventKind.CLEANER_ARRIVED
        assert event.distance_m == pytest.approx(120, abs=0.5)

    async def test_start_outside_geofence_rejected(self, service, make_job, recorder):
        job = await make_job("ARRIVED")
        before = snapshot(service, job.id)
        seen = len(recorder.events)
        lat, lng = north_of(500)

        with pytest.raises(GeofenceError) as exc:
            await service.start_job(job.id, CLEANER, lat, lng)

        assert exc.value.reason == TransitionErrorReason.OUT_OF_GEOFENCE
        assert exc.value.distance_m == pytest.approx(500, abs=0.5)
        assert exc.value.to_dict()["radius_m"] == 250
        assert snapshot(service, job.id) == before
        assert len(recorder.events) == seen
        assert EventKind.JOB_STARTED not in recorder.kinds()

    @pytest.mark.parametrize("meters", [0, 249])
    async def test_start_inside_radius(self, service, make_job, meters):
        job = await make_job("ARRIVED")
        lat, lng = north_of(meters)
        job = await service.start_job(job.id, CLEANER, lat, lng)
        assert job.state == JobState.IN_PROGRESS.value
        assert job.max_billable_minutes == 120
        assert job.max_billable_credits == 100.0

    async def test_arrive_251m_rejected(self, service, make_job):
        job = await make_job("EN_ROUTE")
        lat, lng = north_of(251)
        with pytest.raises(GeofenceError):
            await service.mark_arrived(job.id, CLEANER, lat, lng)

    async def test_state_checked_before_geofence(self, service, make_job):
        job = await make_job("ASSIGNED")
        lat, lng = north_of(5000)
        with pytest.raises(WrongStateError):
            await service.start_job(job.id, CLEANER, lat, lng)

    async def test_actor_checked_before_geofence(self, service, make_job):
        job = await make_job("ARRIVED")
        lat, lng = north_of(5000)
        with pytest.raises(UnauthorizedActorError):
            await service.start_job(job.id, OTHER_CLEANER, lat, lng)

    async def test_client_cannot_mark_arrival(self, service, make_job):
        job = await make_job("EN_ROUTE")
        with pytest.raises(UnauthorizedActorError):
            await service.mark_arrived(job.id, CLIENT, JOB_LAT, JOB_LNG)


class TestIllegalTransitions:
    @pytest.mark.parametrize(
        "state, operation",
        [
            ("OFFERED", "mark_en_route"),
            ("ASSIGNED", "mark_arrived"),
            ("EN_ROUTE", "start_job"),
            ("ARRIVED", "complete_job"),
            ("IN_PROGRESS", "mark_arrived"),
        ],
    )
    async def test_wrong_state_leaves_record_unchanged(self, service, make_job, recorder, state, operation):
        job = await make_job(state)
        before = snapshot(service, job.id)
        seen = len(recorder.events)

        with pytest.raises(WrongStateError) as exc:
            if operation == "mark_en_route":
                await service.mark_en_route(job.id, CLEANER)
            else:
                await getattr(service, operation)(job.id, CLEANER, JOB_LAT, JOB_LNG)

        assert exc.value.reason == TransitionErrorReason.WRONG_STATE
        assert exc.value.current_state == state
        assert snapshot(service, job.id) == before
        assert len(recorder.events) == seen

    async def test_stale_version_is_concurrent_modification(self, service, db, make_job):
        job = await make_job("ASSIGNED")
        stale = job.version - 1

        with pytest.raises(ConcurrentTransitionError) as exc:
            JobRepository.update(db, job, stale, state=JobState.EN_ROUTE.value)

        assert exc.value.reason == TransitionErrorReason.CONCURRENT_MODIFICATION
        assert service.get_job(job.id).state == JobState.ASSIGNED.value

    async def test_each_transition_bumps_version(self, make_job):
        job = await make_job("IN_PROGRESS")
        assert job.version == 5


class TestBillingAndExtraTime:
    async def test_worked_time_capped_at_contract(self, service, make_job, clock):
        job = await make_job("IN_PROGRESS", contracted_duration_minutes=120)
        clock.advance(minutes=150, seconds=30)

        job = await service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)

        assert job.state == JobState.AWAITING_CLIENT_REVIEW.value
        assert job.actual_minutes_worked == 150
        assert job.billable_minutes == 120
        assert job.final_credits_charged == 100.0

    async def test_short_job_bills_actual_minutes(self, service, make_job, clock):
        job = await make_job("IN_PROGRESS")
        clock.advance(minutes=45, seconds=59)
        job = await service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)
        assert job.billable_minutes == 45

    async def test_partial_approval_raises_ceiling_by_approved_amount(self, service, make_job, clock, recorder):
        job = await make_job("IN_PROGRESS", contracted_duration_minutes=120)

        job = await service.request_extra_time(job.id, CLEANER, 30, "Oven needs deep clean")
        assert job.state == JobState.IN_PROGRESS.value
        assert job.sub_state == JobSubState.EXTRA_TIME_REQUESTED.value
        assert job.has_pending_extra_time_request

        job = await service.approve_extra_time(job.id, CLIENT, minutes=20)
        assert job.sub_state == JobSubState.EXTRA_TIME_APPROVED.value
        assert job.approved_extra_minutes == 20
        assert not job.has_pending_extra_time_request
        assert recorder.events[-1].minutes_approved == 20

        clock.advance(minutes=200)
        job = await service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)
        assert job.billable_minutes == 140

    async def test_denied_extra_time_keeps_ceiling(self, service, make_job, clock):
        job = await make_job("IN_PROGRESS", contracted_duration_minutes=60)
        await service.request_extra_time(job.id, CLEANER, 30, "Extra room")
        job = await service.deny_extra_time(job.id, CLIENT, "Budget")
        assert job.sub_state == JobSubState.EXTRA_TIME_DENIED.value

        clock.advance(minutes=90)
        job = await service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)
        assert job.billable_minutes == 60

    async def test_completion_drops_unanswered_extra_time_request(self, service, make_job, clock):
        job = await make_job("IN_PROGRESS", contracted_duration_minutes=60)
        await service.request_extra_time(job.id, CLEANER, 30, "Garage")

        clock.advance(minutes=75)
        job = await service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)

        assert job.state == JobState.AWAITING_CLIENT_REVIEW.value
        assert job.sub_state == JobSubState.NONE.value
        assert not job.has_pending_extra_time_request
        assert job.billable_minutes == 60

    async def test_extra_time_rules(self, service, make_job):
        job = await make_job("IN_PROGRESS")
        with pytest.raises(MissingPrerequisiteError):
            await service.approve_extra_time(job.id, CLIENT)
        with pytest.raises(InvalidInputError):
            await service.request_extra_time(job.id, CLEANER, 0, "Nothing")

        await service.request_extra_time(job.id, CLEANER, 15, "Windows")
        with pytest.raises(InvalidInputError):
            await service.request_extra_time(job.id, CLEANER, 15, "Again")
        with pytest.raises(InvalidInputError):
            await service.approve_extra_time(job.id, CLIENT, minutes=30)
        with pytest.raises(UnauthorizedActorError):
            await service.approve_extra_time(job.id, CLEANER)

    async def test_extra_time_only_while_in_progress(self, service, make_job):
        job = await make_job("ARRIVED")
        with pytest.raises(WrongStateError):
            await service.request_extra_time(job.id, CLEANER, 15, "Early")


class TestPhotos:
    async def test_completion_requires_minimum_photos(self, service, make_job, recorder):
        job = await make_job("IN_PROGRESS", require_photos=True)
        for i in range(3):
            await service.record_photo(job.id, CLEANER, "before", f"b{i}")
        for i in range(2):
            await service.record_photo(job.id, CLEANER, "after", f"a{i}")

        with pytest.raises(MissingPrerequisiteError) as exc:
            await service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)
        assert "after photos (2/3)" in exc.value.message

        job = await service.record_photo(job.id, CLEANER, "after", "a2")
        assert job.state == JobState.IN_PROGRESS.value
        assert recorder.events[-1].kind == EventKind.AFTER_PHOTO_UPLOADED
        assert recorder.events[-1].count == 3

        job = await service.complete_job(job.id, CLEANER, JOB_LAT, JOB_LNG)
        assert job.state == JobState.AWAITING_CLIENT_REVIEW.value

    async def test_unknown_phase(self, service, make_job):
        job = await make_job("IN_PROGRESS")
        with pytest.raises(InvalidInputError):
            await service.record_photo(job.id, CLEANER, "during", "p1")


class TestReviewAndDisputes:
    async def test_client_approves(self, service, make_job, recorder):
        job = await make_job("AWAITING_CLIENT_REVIEW")
        job = await service.approve_completion(job.id, CLIENT, rating=5, tip_credits=10)
        assert job.state == JobState.COMPLETED_APPROVED.value
        assert job.client_rating == 5
        assert recorder.events[-1].kind == EventKind.CLIENT_APPROVED

    async def test_rating_range(self, service, make_job):
        job = await make_job("AWAITING_CLIENT_REVIEW")
        with pytest.raises(InvalidInputError):
            await service.approve_completion(job.id, CLIENT, rating=6)

    @pytest.mark.parametrize("resolution, final_state", [("approve", "COMPLETED_APPROVED"), ("refund", "CANCELLED")])
    async def test_dispute_flow(self, service, make_job, recorder, resolution, final_state):
        job = await make_job("AWAITING_CLIENT_REVIEW")

        job = await service.open_dispute(job.id, CLIENT, "Bathroom was skipped")
        assert job.state == JobState.DISPUTED.value
        assert job.dispute_opened_by == "client"

        with pytest.raises(UnauthorizedActorError):
            await service.begin_dispute_review(job.id, CLIENT)
        job = await service.begin_dispute_review(job.id, ADMIN)
        assert job.state == JobState.UNDER_REVIEW.value

        job = await service.resolve_dispute(job.id, ADMIN, resolution, "Reviewed photos")
        assert job.state == final_state
        assert job.dispute_resolution == resolution
        assert recorder.kinds()[-3:] == [
            EventKind.DISPUTE_OPENED,
            EventKind.DISPUTE_REVIEW_STARTED,
            EventKind.DISPUTE_RESOLVED,
        ]

    async def test_unknown_resolution(self, service, make_job):
        job = await make_job("AWAITING_CLIENT_REVIEW")
        await service.open_dispute(job.id, CLEANER, "Client unreachable")
        await service.begin_dispute_review(job.id, ADMIN)
        with pytest.raises(InvalidInputError):
            await service.resolve_dispute(job.id, ADMIN, "split")


class TestCancelAndReschedule:
    @pytest.mark.parametrize("state, urgent", [("ASSIGNED", False), ("EN_ROUTE", True), ("IN_PROGRESS", True)])
    async def test_cancel(self, service, make_job, recorder, state, urgent):
        job = await make_job(state)
        job = await service.cancel_job(job.id, CLIENT, "Plans changed")
        assert job.state == JobState.CANCELLED.value
        assert job.cancelled_by == CLIENT.id
        event = recorder.events[-1]
        assert event.kind == EventKind.JOB_CANCELLED
        assert event.cancelled_by == "client"
        assert event.urgent is urgent

    async def test_cannot_cancel_terminal_or_under_review(self, service, make_job):
        job = await make_job("AWAITING_CLIENT_REVIEW")
        await service.open_dispute(job.id, CLIENT, "Missed rooms")
        await service.begin_dispute_review(job.id, ADMIN)
        with pytest.raises(WrongStateError):
            await service.cancel_job(job.id, ADMIN, "Too late")

        done = await make_job("AWAITING_CLIENT_REVIEW")
        await service.approve_completion(done.id, CLIENT, rating=4)
        with pytest.raises(WrongStateError):
            await service.cancel_job(done.id, CLIENT, "Changed my mind")

    async def test_cancel_requires_reason(self, service, make_job):
        job = await make_job("ASSIGNED")
        with pytest.raises(InvalidInputError):
            await service.cancel_job(job.id, CLIENT, "  ")

    async def test_reschedule_request(self, service, make_job, recorder):
        job = await make_job("ASSIGNED")
        job = await service.request_reschedule(job.id, CLEANER, "2026-01-07", "14:30")
        assert job.state == JobState.ASSIGNED.value
        assert job.sub_state == JobSubState.RESCHEDULE_REQUESTED.value
        assert job.reschedule_requested_by == CLEANER.id
        assert recorder.events[-1].requested_by == "cleaner"

    async def test_reschedule_validates_format(self, service, make_job):
        job = await make_job("ASSIGNED")
        with pytest.raises(InvalidInputError):
            await service.request_reschedule(job.id, CLIENT, "07/01/2026", "14:30")
        with pytest.raises(InvalidInputError):
            await service.request_reschedule(job.id, CLIENT, "2026-01-07", "25:00")


class TestQueries:
    async def test_list_jobs_scoped_by_role(self, service, make_job):
        await make_job("ASSIGNED")
        await make_job()

        assert len(service.list_jobs(CLIENT)) == 2
        assert len(service.list_jobs(ADMIN, state="OFFERED")) == 1
        assert len(service.list_jobs(CLEANER)) == 1
        assert service.list_jobs(OTHER_CLEANER) == []
