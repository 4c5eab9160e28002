"""
Unified Notification Service
Subscribes to job lifecycle events and fans each one out to in-app, email, SMS and push.
Every channel is isolated: one failing adapter never stops the others.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .. import config
from ..domain.events.bus import EventBus
from ..domain.events.events import DomainEvent, EventKind
from ..domain.jobs.repository import JobRepository
from ..domain.notifications.repository import CHANNELS, PreferenceRepository, ProfileRepository
from ..email_service import send_template_email
from ..models_job import Job
from ..models_notification import UserProfile
from ..realtime.hub import RealtimeHub
from ..shared.timekeeping import QuietHours
from .in_app_service import create_in_app_notification, serialize_notification
from .notification_templates import RENDERERS, RenderedNotification, TemplateContext, render
from .push_service import send_push
from .twilio_service import send_sms

logger = logging.getLogger(__name__)

# Always sent over SMS and push regardless of stored preferences
PREFERENCE_EXEMPT_KINDS = {EventKind.EXTRA_TIME_REQUESTED}
# Time-critical for the client, so they go out during quiet hours too
QUIET_HOURS_EXEMPT_KINDS = {EventKind.CLEANER_EN_ROUTE, EventKind.CLEANER_ARRIVED}
QUIET_HOURS_ERROR = "Held back during quiet hours"

CLIENT_AUDIENCE_KINDS = {
    EventKind.CLEANER_EN_ROUTE,
    EventKind.CLEANER_ARRIVED,
    EventKind.JOB_STARTED,
    EventKind.BEFORE_PHOTO_UPLOADED,
    EventKind.AFTER_PHOTO_UPLOADED,
    EventKind.EXTRA_TIME_REQUESTED,
    EventKind.JOB_COMPLETED,
}
CLEANER_AUDIENCE_KINDS = {
    EventKind.EXTRA_TIME_APPROVED,
    EventKind.EXTRA_TIME_DENIED,
    EventKind.CLIENT_APPROVED,
}
# Client and assigned cleaner both hear about it
BOTH_PARTIES_KINDS = {EventKind.JOB_ASSIGNED}
# Everyone on the job except whoever caused the event
COUNTERPARTY_KINDS = {
    EventKind.DISPUTE_OPENED,
    EventKind.DISPUTE_REVIEW_STARTED,
    EventKind.DISPUTE_RESOLVED,
    EventKind.JOB_CANCELLED,
    EventKind.RESCHEDULE_REQUESTED,
}


@dataclass
class ChannelAdapters:
    """Channel entry points. SMS and push return (success, error); email raises on failure."""

    in_app: Callable = create_in_app_notification
    email: Callable = send_template_email
    sms: Callable = send_sms
    push: Callable = send_push


def forced_channels(event: DomainEvent) -> set:
    if event.kind in PREFERENCE_EXEMPT_KINDS or event.urgent:
        return {"sms", "push"}
    return set()


def quiet_hours_exempt(event: DomainEvent, rendered: RenderedNotification) -> bool:
    return bool(forced_channels(event)) or event.kind in QUIET_HOURS_EXEMPT_KINDS or rendered.priority == "urgent"


def default_quiet_hours() -> Optional[QuietHours]:
    if not config.QUIET_HOURS_ENABLED:
        return None
    return QuietHours(config.QUIET_HOURS_START, config.QUIET_HOURS_END, config.LOCAL_TIMEZONE)


class NotificationOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        adapters: Optional[ChannelAdapters] = None,
        hub: Optional[RealtimeHub] = None,
        quiet_hours: Optional[QuietHours] = None,
    ):
        self.session_factory = session_factory
        self.adapters = adapters or ChannelAdapters()
        self.hub = hub
        self.quiet_hours = quiet_hours

    def register(self, bus: EventBus) -> None:
        for kind in RENDERERS:
            bus.on(kind, self.handle)
        logger.info(f"✅ Notification orchestrator subscribed to {len(RENDERERS)} event kinds")

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_recipients(db: Session, event: DomainEvent, job: Job) -> List[Tuple[str, str]]:
        """(user_id, audience) pairs interested in the event"""
        pairs: List[Tuple[str, str]] = []
        kind = event.kind

        if kind == EventKind.JOB_OFFERED:
            pairs = [(cleaner_id, "cleaner") for cleaner_id in event.cleaner_ids]
        elif kind in CLIENT_AUDIENCE_KINDS:
            pairs = [(job.client_id, "client")]
        elif kind in CLEANER_AUDIENCE_KINDS:
            if job.assigned_cleaner_id:
                pairs = [(job.assigned_cleaner_id, "cleaner")]
        elif kind in BOTH_PARTIES_KINDS:
            pairs = [(job.client_id, "client"), (job.assigned_cleaner_id, "cleaner")]
        elif kind in COUNTERPARTY_KINDS:
            parties = [(job.client_id, "client")]
            if job.assigned_cleaner_id:
                parties.append((job.assigned_cleaner_id, "cleaner"))
            pairs = [(user_id, audience) for user_id, audience in parties if user_id != event.actor_id]
            if kind == EventKind.DISPUTE_OPENED:
                pairs += [(admin.user_id, "admin") for admin in ProfileRepository.get_admins(db)]

        seen = set()
        unique = []
        for user_id, audience in pairs:
            if user_id and user_id not in seen:
                seen.add(user_id)
                unique.append((user_id, audience))
        return unique

    @staticmethod
    def _profile(db: Session, user_id: str, audience: str) -> UserProfile:
        # Unknown users still get in-app notifications, just no email/SMS
        return ProfileRepository.get(db, user_id) or UserProfile(user_id=user_id, role=audience)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def handle(self, event: DomainEvent) -> List[dict]:
        """Event bus handler - one result dict per recipient"""
        db = self.session_factory()
        try:
            job = JobRepository.get(db, event.job_id)
            if not job:
                logger.warning(f"⚠️ {event.kind.value} for unknown job {event.job_id}, nothing to notify")
                return []

            client = self._profile(db, job.client_id, "client")
            cleaner = (
                self._profile(db, job.assigned_cleaner_id, "cleaner") if job.assigned_cleaner_id else None
            )

            results = []
            for user_id, audience in self.resolve_recipients(db, event, job):
                recipient = self._profile(db, user_id, audience)
                ctx = TemplateContext(
                    event=event,
                    job=job,
                    audience=audience,
                    recipient_name=recipient.first_name,
                    client_name=client.full_name or "Your client",
                    cleaner_name=(cleaner.full_name if cleaner and cleaner.full_name else "Your cleaner"),
                )
                results.append(await self.dispatch(db, event, recipient, ctx))
            return results
        finally:
            db.close()

    async def dispatch(self, db: Session, event: DomainEvent, recipient: UserProfile, ctx: TemplateContext) -> dict:
        """Send one rendered notification to one recipient across every enabled channel"""
        rendered = render(ctx)
        return await self.deliver(
            db,
            recipient,
            rendered,
            job_id=event.job_id,
            label=event.kind.value,
            forced=forced_channels(event),
            quiet_exempt=quiet_hours_exempt(event, rendered),
        )

    def _channels(self, db: Session, user_id: str) -> Dict[str, bool]:
        try:
            return PreferenceRepository.get_channels(db, user_id)
        except Exception as e:
            db.rollback()
            logger.warning(f"⚠️ Could not load notification preferences for {user_id}, using defaults: {e}")
            return {channel: True for channel in CHANNELS}

    async def deliver(
        self,
        db: Session,
        recipient: UserProfile,
        rendered: RenderedNotification,
        job_id: Optional[str] = None,
        label: Optional[str] = None,
        forced: Optional[set] = None,
        quiet_exempt: bool = False,
    ) -> dict:
        kind = label or rendered.notification_type
        forced = forced or set()
        prefs = self._channels(db, recipient.user_id)
        enabled = {channel: prefs[channel] or channel in forced for channel in prefs}
        held = not quiet_exempt and self.quiet_hours is not None and self.quiet_hours.is_quiet()

        result: Dict[str, Any] = {
            "user_id": recipient.user_id,
            "event": kind,
            "in_app_sent": False,
            "email_sent": False,
            "sms_sent": False,
            "push_sent": False,
            "in_app_error": None,
            "email_error": None,
            "sms_error": None,
            "push_error": None,
        }

        # In-app
        if enabled["in_app"]:
            try:
                notification = self.adapters.in_app(
                    db, recipient, rendered, job_id=job_id, payload={"event": kind, "job_id": job_id}
                )
                result["in_app_sent"] = True
                await self._publish_live(recipient, notification)
            except Exception as e:
                db.rollback()
                result["in_app_error"] = str(e)
                logger.error(f"❌ Failed to create {kind} in-app notification for {recipient.user_id}: {e}")
        else:
            logger.debug(f"In-app disabled by {recipient.user_id} for {kind}")

        # Email
        if rendered.email and enabled["email"]:
            if recipient.email:
                try:
                    logger.info(f"📧 Sending {kind} email to {recipient.email}")
                    await self.adapters.email(recipient.email, rendered.email.template_key, rendered.email.context)
                    result["email_sent"] = True
                    logger.info(f"✅ {kind} email sent successfully to {recipient.email}")
                except Exception as e:
                    db.rollback()
                    result["email_error"] = str(e)
                    logger.error(f"❌ Failed to send {kind} email to {recipient.email} (job {job_id}): {e}")
            else:
                logger.debug(f"⚠️ No email address for {kind} notification to {recipient.user_id}")

        # SMS
        if rendered.sms and enabled["sms"]:
            if held:
                result["sms_error"] = QUIET_HOURS_ERROR
                logger.info(f"🌙 Quiet hours: {kind} SMS to {recipient.user_id} held back")
            elif recipient.phone:
                try:
                    logger.info(f"📱 Attempting to send {kind} SMS to {recipient.phone}")
                    success, error = await self.adapters.sms(
                        db,
                        to_phone=recipient.phone,
                        message_body=rendered.sms,
                        message_type=rendered.notification_type,
                        job_id=job_id,
                        priority=rendered.priority,
                    )
                    result["sms_sent"] = bool(success)
                    result["sms_error"] = error
                    if not success:
                        logger.warning(f"⚠️ {kind} SMS not sent to {recipient.phone}: {error}")
                except Exception as e:
                    db.rollback()
                    result["sms_error"] = str(e)
                    logger.error(f"❌ Failed to send {kind} SMS to {recipient.phone} (job {job_id}): {e}")
            else:
                logger.debug(f"⚠️ No phone number for {kind} SMS to {recipient.user_id}")

        # Push
        if rendered.push and enabled["push"]:
            if held:
                result["push_error"] = QUIET_HOURS_ERROR
                logger.info(f"🌙 Quiet hours: {kind} push to {recipient.user_id} held back")
            else:
                try:
                    success, error = await self.adapters.push(db, recipient.user_id, rendered.push)
                    result["push_sent"] = bool(success)
                    result["push_error"] = error
                    if not success:
                        logger.debug(f"🔔 {kind} push not sent to {recipient.user_id}: {error}")
                except Exception as e:
                    db.rollback()
                    result["push_error"] = str(e)
                    logger.error(f"❌ Failed to send {kind} push to {recipient.user_id} (job {job_id}): {e}")

        return result

    async def _publish_live(self, recipient: UserProfile, notification) -> None:
        if not self.hub or not recipient.email:
            return
        try:
            await self.hub.publish(recipient.email, serialize_notification(notification))
        except Exception as e:
            logger.warning(f"⚠️ Live delivery failed for {recipient.email}: {e}")
