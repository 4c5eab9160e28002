"""
Notification Templates
Renders one message per (event kind, audience) for every channel.
A channel left as None means the event is not sent on that channel.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config import BRAND_NAME, FRONTEND_URL, PUSH_DEFAULT_ICON
from ..domain.events.events import DomainEvent, EventKind
from ..models_job import Job
from ..shared.timekeeping import extra_time_cost


@dataclass
class PushPayload:
    title: str
    body: str
    tag: str
    icon: str = PUSH_DEFAULT_ICON
    require_interaction: bool = False
    actions: List[Dict[str, str]] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmailMessage:
    template_key: str
    context: Dict[str, Any]


@dataclass
class RenderedNotification:
    notification_type: str
    title: str
    message: str
    priority: str = "normal"
    link: Optional[str] = None
    sms: Optional[str] = None
    email: Optional[EmailMessage] = None
    push: Optional[PushPayload] = None


@dataclass
class TemplateContext:
    event: DomainEvent
    job: Job
    audience: str  # client | cleaner | admin
    recipient_name: str
    client_name: str
    cleaner_name: str

    @property
    def job_link(self) -> str:
        return f"{FRONTEND_URL}/jobs/{self.job.id}"

    @property
    def when(self) -> str:
        if self.job.scheduled_date and self.job.scheduled_time:
            return f"{self.job.scheduled_date} at {self.job.scheduled_time}"
        return self.job.scheduled_date or "the scheduled time"


def _sms(text: str) -> str:
    return f"{text} - {BRAND_NAME}"


def _push(ctx: TemplateContext, title: str, body: str, tag: str, **kwargs) -> PushPayload:
    data = {"type": ctx.event.kind.value, "jobId": ctx.job.id, "url": ctx.job_link}
    data.update(kwargs.pop("data", {}))
    return PushPayload(title=title, body=body, tag=tag, data=data, **kwargs)


def _email(ctx: TemplateContext, template_key: str, **extra) -> EmailMessage:
    context = {
        "recipient_name": ctx.recipient_name,
        "client_name": ctx.client_name,
        "cleaner_name": ctx.cleaner_name,
        "address": ctx.job.address,
        "when": ctx.when,
        "job_link": ctx.job_link,
    }
    context.update(extra)
    return EmailMessage(template_key=template_key, context=context)


def render_job_offered(ctx: TemplateContext) -> RenderedNotification:
    pay = f"{ctx.job.contracted_duration_minutes / 60 * ctx.job.hourly_rate_credits:.2f}"
    return RenderedNotification(
        notification_type="job_offer",
        title="New job offer",
        message=f"{ctx.client_name} wants to book you for {ctx.when}. Pay: ${pay}.",
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"🆕 New job offer from {ctx.client_name} on {ctx.when}. Pay: ${pay}. Respond in app."),
        email=_email(ctx, "email.cleaner.job_offered", pay=pay),
        push=_push(
            ctx,
            "🆕 New job offer!",
            f"{ctx.client_name} wants to book you. Pay: ${pay}. Tap to respond.",
            "job-offer",
            require_interaction=True,
            actions=[{"action": "accept", "title": "Accept"}, {"action": "decline", "title": "Decline"}],
        ),
    )


def render_job_assigned(ctx: TemplateContext) -> RenderedNotification:
    if ctx.audience == "cleaner":
        return RenderedNotification(
            notification_type="job_assigned",
            title="New job assigned",
            message=(
                f"You're booked for {ctx.when} at {ctx.job.address}. "
                "Review the details and mark when you're en route."
            ),
            link=ctx.job_link,
            push=_push(ctx, "🎯 New job assigned!", f"You're booked for {ctx.when}. Tap to view the job.", "job-assigned"),
        )
    return RenderedNotification(
        notification_type="booking_confirmed",
        title="Cleaner confirmed",
        message=f"{ctx.cleaner_name} accepted your cleaning for {ctx.when}.",
        link=ctx.job_link,
        sms=_sms(f"✅ Your cleaning is booked for {ctx.when}. Cleaner: {ctx.cleaner_name}."),
        email=_email(ctx, "email.client.booking_confirmation"),
        push=_push(ctx, "✅ Booking confirmed", f"{ctx.cleaner_name} will clean on {ctx.when}.", "job-assigned"),
    )


def render_cleaner_en_route(ctx: TemplateContext) -> RenderedNotification:
    eta = f"{getattr(ctx.event, 'eta_minutes', 15)} minutes"
    return RenderedNotification(
        notification_type="cleaner_en_route",
        title="Your cleaner is on the way",
        message=f"{ctx.cleaner_name} is heading to your location. ETA: {eta}",
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"🚗 {ctx.cleaner_name} is on the way! ETA: {eta}."),
        email=_email(ctx, "email.client.cleaner_on_way", eta=eta),
        push=_push(
            ctx,
            "🚗 Your cleaner is on the way!",
            f"{ctx.cleaner_name} is heading to your location. ETA: {eta}",
            "cleaner-en-route",
        ),
    )


def render_cleaner_arrived(ctx: TemplateContext) -> RenderedNotification:
    return RenderedNotification(
        notification_type="cleaner_arrived",
        title="Your cleaner has arrived",
        message=f"{ctx.cleaner_name} checked in at your location and will start shortly.",
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"📍 {ctx.cleaner_name} has arrived and will start shortly."),
        push=_push(
            ctx,
            "📍 Your cleaner has arrived!",
            f"{ctx.cleaner_name} checked in at your location and will start shortly.",
            "cleaner-arrived",
        ),
    )


def render_job_started(ctx: TemplateContext) -> RenderedNotification:
    started = ctx.event.occurred_at.strftime("%H:%M")
    return RenderedNotification(
        notification_type="job_started",
        title="Cleaning started",
        message=f"{ctx.cleaner_name} started cleaning at {started}.",
        link=ctx.job_link,
        sms=_sms(f"🧹 Cleaning started at {started} by {ctx.cleaner_name}."),
        push=_push(ctx, "🧹 Cleaning started", f"{ctx.cleaner_name} started cleaning at {started}.", "job-started"),
    )


def _render_photo(ctx: TemplateContext, phase: str) -> RenderedNotification:
    count = getattr(ctx.event, "count", 0)
    return RenderedNotification(
        notification_type=f"{phase}_photo_uploaded",
        title=f"New {phase} photo",
        message=f"{ctx.cleaner_name} uploaded a {phase} photo ({count} so far).",
        priority="low",
        link=ctx.job_link,
        sms=_sms(f"📸 {ctx.cleaner_name} uploaded a {phase} photo of your home."),
        push=_push(ctx, f"📸 New {phase} photo", f"{ctx.cleaner_name} uploaded a {phase} photo.", f"{phase}-photo"),
    )


def render_before_photo(ctx: TemplateContext) -> RenderedNotification:
    return _render_photo(ctx, "before")


def render_after_photo(ctx: TemplateContext) -> RenderedNotification:
    return _render_photo(ctx, "after")


def render_extra_time_requested(ctx: TemplateContext) -> RenderedNotification:
    minutes = ctx.event.minutes_requested
    cost = extra_time_cost(minutes, ctx.event.hourly_rate_credits)
    return RenderedNotification(
        notification_type="extra_time_request",
        title="Extra time requested",
        message=(
            f"{ctx.cleaner_name} requests {minutes} extra minutes (+${cost}). "
            f"Reason: {ctx.event.reason}"
        ),
        priority="urgent",
        link=ctx.job_link,
        sms=_sms(f"⏰ {ctx.cleaner_name} requests {minutes} extra minutes (+${cost}). Approve in app: {ctx.job_link}"),
        email=_email(
            ctx, "email.client.extra_time_requested", minutes=minutes, cost=cost, reason=ctx.event.reason
        ),
        push=_push(
            ctx,
            "⏰ Extra time requested - Approval needed",
            f"{ctx.cleaner_name} requests {minutes} extra minutes (+${cost}). Tap to approve or deny.",
            "extra-time-request",
            require_interaction=True,
            actions=[{"action": "approve", "title": "Approve"}, {"action": "deny", "title": "Deny"}],
            data={"urgent": True},
        ),
    )


def render_extra_time_approved(ctx: TemplateContext) -> RenderedNotification:
    minutes = ctx.event.minutes_approved
    return RenderedNotification(
        notification_type="extra_time_approved",
        title="Extra time approved",
        message=f"{ctx.client_name} approved {minutes} extra minutes.",
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"✅ Client approved {minutes} extra minutes. Continue working!"),
        push=_push(
            ctx, "✅ Extra time approved!", f"Client approved {minutes} extra minutes. Continue working!",
            "extra-time-approved",
        ),
    )


def render_extra_time_denied(ctx: TemplateContext) -> RenderedNotification:
    return RenderedNotification(
        notification_type="extra_time_denied",
        title="Extra time denied",
        message=f"{ctx.client_name} denied the extra time request.",
        priority="high",
        link=ctx.job_link,
        sms=_sms("❌ Client denied extra time. Please wrap up soon."),
        push=_push(ctx, "❌ Extra time denied", "Client denied extra time. Please wrap up soon.", "extra-time-denied"),
    )


def render_job_completed(ctx: TemplateContext) -> RenderedNotification:
    minutes = ctx.event.billable_minutes
    duration = f"{minutes // 60}h {minutes % 60}m"
    return RenderedNotification(
        notification_type="job_completed",
        title="Cleaning complete",
        message=f"{ctx.cleaner_name} has finished ({duration}). Please review and approve the work.",
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"✅ Cleaning complete ({duration})! Please review: {ctx.job_link}"),
        email=_email(ctx, "email.client.cleaning_completed", duration=duration),
        push=_push(
            ctx, "✅ Cleaning complete!", f"{ctx.cleaner_name} has finished. Please review and approve the work.",
            "job-completed",
        ),
    )


def render_client_approved(ctx: TemplateContext) -> RenderedNotification:
    rating = ctx.event.rating
    tip = ctx.event.tip_credits
    tip_text = f" and left a ${tip:.2f} tip" if tip else ""
    return RenderedNotification(
        notification_type="job_approved",
        title="Job approved",
        message=f"{ctx.client_name} approved your work with {rating}★{tip_text}.",
        link=ctx.job_link,
        email=_email(ctx, "email.cleaner.job_approved", rating=rating, tip=tip),
        push=_push(ctx, "⭐ Job approved", f"{ctx.client_name} rated you {rating}★{tip_text}.", "job-approved"),
    )


def render_dispute_opened(ctx: TemplateContext) -> RenderedNotification:
    opener = ctx.client_name if ctx.event.opened_by == "client" else ctx.cleaner_name
    return RenderedNotification(
        notification_type="dispute_opened",
        title="Dispute opened",
        message=f"{opener} opened a dispute: {ctx.event.reason}",
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"⚠️ A dispute was opened on your job at {ctx.job.address}. Our team will follow up."),
        email=_email(ctx, "email.dispute.opened", opened_by=opener, reason=ctx.event.reason),
        push=_push(ctx, "⚠️ Dispute opened", f"{opener} opened a dispute.", "dispute-opened"),
    )


def render_dispute_review_started(ctx: TemplateContext) -> RenderedNotification:
    return RenderedNotification(
        notification_type="dispute_under_review",
        title="Dispute under review",
        message="Our support team is now reviewing the dispute.",
        link=ctx.job_link,
        push=_push(ctx, "🔍 Dispute under review", "Our support team is reviewing the dispute.", "dispute-review"),
    )


def render_dispute_resolved(ctx: TemplateContext) -> RenderedNotification:
    outcome = "approved" if ctx.event.resolution == "approve" else "refunded"
    return RenderedNotification(
        notification_type="dispute_resolved",
        title="Dispute resolved",
        message=f"The dispute was resolved: job {outcome}. {ctx.event.notes or ''}".strip(),
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"✅ Your dispute was resolved: job {outcome}."),
        email=_email(ctx, "email.dispute.resolved", outcome=outcome, notes=ctx.event.notes or ""),
        push=_push(ctx, "✅ Dispute resolved", f"The job was {outcome}.", "dispute-resolved"),
    )


def render_job_cancelled(ctx: TemplateContext) -> RenderedNotification:
    by = {"client": ctx.client_name, "cleaner": ctx.cleaner_name}.get(ctx.event.cancelled_by, "Support")
    return RenderedNotification(
        notification_type="job_cancelled",
        title="Job cancelled",
        message=f"{by} cancelled the job for {ctx.when}. Reason: {ctx.event.reason}",
        priority="urgent" if ctx.event.urgent else "high",
        link=ctx.job_link,
        sms=_sms(f"❌ Your job on {ctx.when} was cancelled by {by}."),
        email=_email(ctx, "email.job.cancelled", cancelled_by=by, reason=ctx.event.reason),
        push=_push(ctx, "❌ Job cancelled", f"{by} cancelled the job for {ctx.when}.", "job-cancelled"),
    )


def render_reschedule_requested(ctx: TemplateContext) -> RenderedNotification:
    by = ctx.client_name if ctx.event.requested_by == "client" else ctx.cleaner_name
    new_when = f"{ctx.event.new_date} at {ctx.event.new_time}"
    return RenderedNotification(
        notification_type="reschedule_request",
        title="Reschedule requested",
        message=f"{by} asked to move the job to {new_when}.",
        priority="high",
        link=ctx.job_link,
        sms=_sms(f"📅 {by} asked to reschedule to {new_when}. Respond in app."),
        email=_email(ctx, "email.job.reschedule_requested", requested_by=by, new_when=new_when),
        push=_push(
            ctx,
            "📅 Reschedule requested",
            f"{by} asked to move the job to {new_when}.",
            "reschedule-request",
            require_interaction=True,
            actions=[{"action": "accept", "title": "Accept"}, {"action": "decline", "title": "Decline"}],
        ),
    )


RENDERERS: Dict[EventKind, Callable[[TemplateContext], RenderedNotification]] = {
    EventKind.JOB_OFFERED: render_job_offered,
    EventKind.JOB_ASSIGNED: render_job_assigned,
    EventKind.CLEANER_EN_ROUTE: render_cleaner_en_route,
    EventKind.CLEANER_ARRIVED: render_cleaner_arrived,
    EventKind.JOB_STARTED: render_job_started,
    EventKind.BEFORE_PHOTO_UPLOADED: render_before_photo,
    EventKind.AFTER_PHOTO_UPLOADED: render_after_photo,
    EventKind.EXTRA_TIME_REQUESTED: render_extra_time_requested,
    EventKind.EXTRA_TIME_APPROVED: render_extra_time_approved,
    EventKind.EXTRA_TIME_DENIED: render_extra_time_denied,
    EventKind.JOB_COMPLETED: render_job_completed,
    EventKind.CLIENT_APPROVED: render_client_approved,
    EventKind.DISPUTE_OPENED: render_dispute_opened,
    EventKind.DISPUTE_REVIEW_STARTED: render_dispute_review_started,
    EventKind.DISPUTE_RESOLVED: render_dispute_resolved,
    EventKind.JOB_CANCELLED: render_job_cancelled,
    EventKind.RESCHEDULE_REQUESTED: render_reschedule_requested,
}


def render(ctx: TemplateContext) -> RenderedNotification:
    return RENDERERS[ctx.event.kind](ctx)


# ---------------------------------------------------------------------------
# Scheduled cleaner reminders (not tied to an event)
# ---------------------------------------------------------------------------


def _reminder(job: Job, notification_type: str, title: str, message: str, priority: str, tag: str) -> RenderedNotification:
    link = f"{FRONTEND_URL}/jobs/{job.id}"
    return RenderedNotification(
        notification_type=notification_type,
        title=title,
        message=message,
        priority=priority,
        link=link,
        push=PushPayload(
            title=title,
            body=message,
            tag=tag,
            data={"type": notification_type, "jobId": job.id, "url": link},
        ),
    )


def render_upcoming_job_reminder(job: Job, minutes_until: int) -> RenderedNotification:
    if minutes_until <= 15:
        return _reminder(
            job, "job_reminder_15", "🚨 Job starting soon!",
            f"Your job at {job.address} starts in {minutes_until} minutes! Time to head out.", "high", "job-reminder",
        )
    if minutes_until <= 30:
        return _reminder(
            job, "job_reminder_30", "⏰ Job in 30 minutes",
            f"Don't forget: your job at {job.address} starts soon. Prepare your supplies!", "normal", "job-reminder",
        )
    return _reminder(
        job, "job_reminder_60", "📅 Job in 1 hour",
        f"Heads up: you have a job at {job.address} in about an hour.", "low", "job-reminder",
    )


def render_late_arrival(job: Job, minutes_late: int) -> RenderedNotification:
    return _reminder(
        job, "late_arrival", "⚠️ Running late",
        f"You're {minutes_late} minutes late for your job at {job.address}. Contact the client if needed.",
        "high", "late-arrival",
    )


def render_photo_reminder(job: Job, phase: str) -> RenderedNotification:
    if phase == "before":
        message = "Don't forget to take before photos before you start cleaning!"
    else:
        message = "Remember to take after photos to complete the job."
    return _reminder(job, f"photo_reminder_{phase}", "📸 Photo reminder", message, "normal", f"{phase}-photo-reminder")
