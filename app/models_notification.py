"""
Notification Models
In-app notifications, channel preferences, contact profiles, SMS logs, push devices and sent reminders
"""

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from .database import Base


def generate_notification_id():
    return str(uuid.uuid4())


class UserProfile(Base):
    """Contact details for clients, cleaners and admins"""

    __tablename__ = "user_profiles"

    user_id = Column(String(128), primary_key=True)
    role = Column(String(20), nullable=False)  # client | cleaner | admin
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(20), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    @property
    def first_name(self) -> str:
        if not self.full_name:
            return "there"
        return self.full_name.split(" ")[0]


class NotificationPreference(Base):
    """Per-user channel switches. A missing row means every channel is on."""

    __tablename__ = "notification_preferences"

    user_id = Column(String(128), primary_key=True)
    in_app = Column(Boolean, nullable=False, default=True)
    email = Column(Boolean, nullable=False, default=True)
    sms = Column(Boolean, nullable=False, default=True)
    push = Column(Boolean, nullable=False, default=True)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Notification(Base):
    """In-app notification shown in the bell menu and pushed over real-time transports"""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_notification_id)
    recipient_id = Column(String(128), nullable=False, index=True)
    recipient_email = Column(String(255), nullable=True, index=True)
    job_id = Column(String(36), nullable=True, index=True)

    notification_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    link = Column(String(500), nullable=True)
    priority = Column(String(10), nullable=False, default="normal")  # low | normal | high | urgent

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class SMSLog(Base):
    """Track SMS messages sent via Twilio"""

    __tablename__ = "sms_logs"

    id = Column(Integer, primary_key=True, index=True)
    to_phone = Column(String(20), nullable=False)
    message_body = Column(Text, nullable=False)
    message_type = Column(String(50), nullable=False)
    job_id = Column(String(36), nullable=True)

    # Twilio response
    twilio_message_sid = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)  # sent | failed | dev_mode
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())


class PushDevice(Base):
    """FCM registration token - its presence records a granted push permission"""

    __tablename__ = "push_devices"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    token = Column(String(512), nullable=False, unique=True)
    user_agent = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    last_seen_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ReminderLog(Base):
    """One row per reminder sent, so the periodic check never repeats one"""

    __tablename__ = "reminder_logs"
    __table_args__ = (UniqueConstraint("job_id", "reminder_key", name="uq_reminder_job_key"),)

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String(36), nullable=False, index=True)
    reminder_key = Column(String(50), nullable=False)  # job_reminder_15 | late_arrival | photo_reminder_before ...
    recipient_id = Column(String(128), nullable=False)

    sent_at = Column(DateTime, server_default=func.now())
