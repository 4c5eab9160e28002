import pytest

from app.config import BRAND_NAME
from app.domain.events import events as ev
from app.domain.events.events import EventKind
from app.domain.notifications.repository import PushDeviceRepository
from app.email_service import compile_mjml_to_html, render_template_email, send_template_email
from app.email_templates import EMAIL_TEMPLATES
from app.services.notification_templates import (
    RENDERERS,
    TemplateContext,
    render,
    render_late_arrival,
    render_photo_reminder,
    render_upcoming_job_reminder,
)
from app.services.push_service import build_message, send_push

from .conftest import CLEANER, CLIENT, JOB_LAT, JOB_LNG

HERE = ev.GeoPoint(lat=JOB_LAT, lng=JOB_LNG)

SAMPLE_EVENTS = {
    EventKind.JOB_OFFERED: ev.JobOffered(job_id="j", cleaner_ids=[CLEANER.id]),
    EventKind.JOB_ASSIGNED: ev.JobAssigned(job_id="j", cleaner_id=CLEANER.id),
    EventKind.CLEANER_EN_ROUTE: ev.CleanerEnRoute(job_id="j", cleaner_id=CLEANER.id, eta_minutes=12),
    EventKind.CLEANER_ARRIVED: ev.CleanerArrived(job_id="j", cleaner_id=CLEANER.id, location=HERE, distance_m=3.0),
    EventKind.JOB_STARTED: ev.JobStarted(job_id="j", cleaner_id=CLEANER.id, location=HERE, max_billable_minutes=120),
    EventKind.BEFORE_PHOTO_UPLOADED: ev.BeforePhotoUploaded(job_id="j", photo_id="p1", count=1),
    EventKind.AFTER_PHOTO_UPLOADED: ev.AfterPhotoUploaded(job_id="j", photo_id="p2", count=2),
    EventKind.EXTRA_TIME_REQUESTED: ev.ExtraTimeRequested(
        job_id="j", cleaner_id=CLEANER.id, minutes_requested=20, reason="Oven", hourly_rate_credits=25.2
    ),
    EventKind.EXTRA_TIME_APPROVED: ev.ExtraTimeApproved(job_id="j", minutes_approved=15),
    EventKind.EXTRA_TIME_DENIED: ev.ExtraTimeDenied(job_id="j"),
    EventKind.JOB_COMPLETED: ev.JobCompleted(job_id="j", location=HERE, minutes_worked=130, billable_minutes=125),
    EventKind.CLIENT_APPROVED: ev.ClientApproved(job_id="j", rating=5, tip_credits=5),
    EventKind.DISPUTE_OPENED: ev.DisputeOpened(job_id="j", opened_by="client", reason="Missed bathroom"),
    EventKind.DISPUTE_REVIEW_STARTED: ev.DisputeReviewStarted(job_id="j"),
    EventKind.DISPUTE_RESOLVED: ev.DisputeResolved(job_id="j", resolution="refund", notes="Refunded"),
    EventKind.JOB_CANCELLED: ev.JobCancelled(job_id="j", cancelled_by="cleaner", reason="Sick", urgent=True),
    EventKind.RESCHEDULE_REQUESTED: ev.RescheduleRequested(
        job_id="j", requested_by="client", new_date="2026-01-07", new_time="10:00"
    ),
}


@pytest.fixture
async def job(make_job):
    return await make_job("ASSIGNED")


def context(job, event, audience="client"):
    return TemplateContext(
        event=event,
        job=job,
        audience=audience,
        recipient_name="Dana",
        client_name="Dana Client",
        cleaner_name="Sam Cleaner",
    )


def test_every_event_kind_has_a_renderer():
    assert set(RENDERERS) == set(EventKind)
    assert set(SAMPLE_EVENTS) == set(EventKind)


@pytest.mark.parametrize("kind", list(EventKind), ids=lambda k: k.value)
async def test_render_every_kind(job, kind):
    rendered = render(context(job, SAMPLE_EVENTS[kind]))

    assert rendered.notification_type
    assert rendered.title
    assert rendered.link.endswith(f"/jobs/{job.id}")
    if rendered.sms:
        assert rendered.sms.endswith(f" - {BRAND_NAME}")
    if rendered.email:
        assert rendered.email.template_key in EMAIL_TEMPLATES
        subject, mjml = render_template_email(rendered.email.template_key, rendered.email.context)
        assert subject
        assert "<mjml>" in mjml
    if rendered.push:
        assert rendered.push.data["jobId"] == job.id


async def test_extra_time_request_wording(job):
    rendered = render(context(job, SAMPLE_EVENTS[EventKind.EXTRA_TIME_REQUESTED]))

    assert rendered.priority == "urgent"
    assert rendered.sms.startswith("⏰ Sam Cleaner requests 20 extra minutes (+$8.40). Approve in app: ")
    assert rendered.email.context["cost"] == "8.40"


async def test_photo_types_include_phase(job):
    assert render(context(job, SAMPLE_EVENTS[EventKind.BEFORE_PHOTO_UPLOADED])).notification_type == (
        "before_photo_uploaded"
    )
    assert render(context(job, SAMPLE_EVENTS[EventKind.AFTER_PHOTO_UPLOADED])).notification_type == (
        "after_photo_uploaded"
    )


async def test_urgent_cancellation_priority(job):
    rendered = render(context(job, SAMPLE_EVENTS[EventKind.JOB_CANCELLED]))
    assert rendered.priority == "urgent"
    assert "cancelled by Sam Cleaner" in rendered.sms


def test_unknown_email_template():
    with pytest.raises(ValueError):
        render_template_email("email.unknown", {})


async def test_mjml_compiles(job):
    rendered = render(context(job, SAMPLE_EVENTS[EventKind.CLEANER_EN_ROUTE]))
    _, mjml = render_template_email(rendered.email.template_key, rendered.email.context)
    html = compile_mjml_to_html(mjml)
    assert "<html" in html
    assert "Sam Cleaner" in html


async def test_email_requires_configuration(job):
    rendered = render(context(job, SAMPLE_EVENTS[EventKind.JOB_ASSIGNED]))
    with pytest.raises(Exception, match="not configured"):
        await send_template_email("dana@example.com", rendered.email.template_key, rendered.email.context)


class TestPush:
    async def test_build_message_only_links_https(self, job):
        payload = render(context(job, SAMPLE_EVENTS[EventKind.EXTRA_TIME_REQUESTED])).push

        message = build_message("token-1", payload)
        assert message.token == "token-1"
        assert message.webpush.notification.require_interaction is True
        assert [a.action for a in message.webpush.notification.actions] == ["approve", "deny"]
        assert message.webpush.fcm_options is None
        assert message.data["urgent"] == "True"

        payload.data["url"] = "https://app.example.com/jobs/j"
        assert build_message("token-1", payload).webpush.fcm_options.link == "https://app.example.com/jobs/j"

    async def test_no_device_means_no_permission(self, db, job):
        payload = render(context(job, SAMPLE_EVENTS[EventKind.JOB_ASSIGNED])).push
        assert await send_push(db, CLIENT.id, payload) == (False, "Push permission not granted")

    async def test_dev_mode_with_registered_device(self, db, job):
        PushDeviceRepository.register(db, CLIENT.id, "token-1")
        payload = render(context(job, SAMPLE_EVENTS[EventKind.JOB_ASSIGNED])).push
        assert await send_push(db, CLIENT.id, payload) == (True, None)


async def test_assignment_notice_for_cleaner(job):
    rendered = render(context(job, SAMPLE_EVENTS[EventKind.JOB_ASSIGNED], audience="cleaner"))

    assert rendered.notification_type == "job_assigned"
    assert rendered.push.title == "🎯 New job assigned!"
    assert rendered.sms is None
    assert rendered.email is None


class TestReminderTemplates:
    @pytest.mark.parametrize(
        "minutes, notification_type, priority",
        [(10, "job_reminder_15", "high"), (15, "job_reminder_15", "high"), (25, "job_reminder_30", "normal"),
         (60, "job_reminder_60", "low")],
    )
    async def test_upcoming_tiers(self, job, minutes, notification_type, priority):
        rendered = render_upcoming_job_reminder(job, minutes)
        assert rendered.notification_type == notification_type
        assert rendered.priority == priority
        assert rendered.push.data["jobId"] == job.id
        assert rendered.sms is None

    async def test_late_and_photo_wording(self, job):
        assert render_late_arrival(job, 12).message.startswith("You're 12 minutes late")
        assert "before photos" in render_photo_reminder(job, "before").message
        assert render_photo_reminder(job, "after").notification_type == "photo_reminder_after"
