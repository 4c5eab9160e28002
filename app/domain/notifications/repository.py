"""Notification repository - Database operations for notifications, preferences and contacts"""

from typing import List, Optional

from sqlalchemy.orm import Session

from ...models_notification import (
    Notification,
    NotificationPreference,
    PushDevice,
    ReminderLog,
    UserProfile,
)
from ...shared.timekeeping import utcnow

CHANNELS = ("in_app", "email", "sms", "push")


class NotificationRepository:
    """Repository for in-app notification records"""

    @staticmethod
    def create(db: Session, **fields) -> Notification:
        notification = Notification(**fields)
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def get(db: Session, notification_id: str) -> Optional[Notification]:
        return db.query(Notification).filter(Notification.id == notification_id).first()

    @staticmethod
    def list_for_user(db: Session, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = db.query(Notification).filter(Notification.recipient_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc()).limit(limit).all()

    @staticmethod
    def get_unread_by_email(db: Session, email: str, limit: int = 10) -> List[Notification]:
        """Latest unread notifications for a recipient email - backs the polling transport"""
        return (
            db.query(Notification)
            .filter(Notification.recipient_email == email, Notification.is_read.is_(False))
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def mark_read(db: Session, notification: Notification) -> Notification:
        notification.is_read = True
        notification.read_at = utcnow()
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: str) -> int:
        count = (
            db.query(Notification)
            .filter(Notification.recipient_id == user_id, Notification.is_read.is_(False))
            .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
        )
        db.commit()
        return count


class PreferenceRepository:
    """Channel preferences. Missing rows and missing flags mean enabled."""

    @staticmethod
    def get(db: Session, user_id: str) -> Optional[NotificationPreference]:
        return db.query(NotificationPreference).filter(NotificationPreference.user_id == user_id).first()

    @staticmethod
    def get_channels(db: Session, user_id: str) -> dict:
        prefs = PreferenceRepository.get(db, user_id)
        if not prefs:
            return {channel: True for channel in CHANNELS}
        return {
            channel: getattr(prefs, channel) if getattr(prefs, channel) is not None else True
            for channel in CHANNELS
        }

    @staticmethod
    def upsert(db: Session, user_id: str, **channels) -> NotificationPreference:
        prefs = PreferenceRepository.get(db, user_id)
        if not prefs:
            prefs = NotificationPreference(user_id=user_id)
            db.add(prefs)
        for key, value in channels.items():
            if value is not None and key in CHANNELS:
                setattr(prefs, key, value)
        db.commit()
        db.refresh(prefs)
        return prefs


class ProfileRepository:
    @staticmethod
    def get(db: Session, user_id: str) -> Optional[UserProfile]:
        return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()

    @staticmethod
    def get_admins(db: Session) -> List[UserProfile]:
        return db.query(UserProfile).filter(UserProfile.role == "admin").all()

    @staticmethod
    def upsert(db: Session, user_id: str, **fields) -> UserProfile:
        profile = ProfileRepository.get(db, user_id)
        if not profile:
            profile = UserProfile(user_id=user_id, **fields)
            db.add(profile)
        else:
            for key, value in fields.items():
                if value is not None and hasattr(profile, key):
                    setattr(profile, key, value)
        db.commit()
        db.refresh(profile)
        return profile


class PushDeviceRepository:
    @staticmethod
    def list_tokens(db: Session, user_id: str) -> List[str]:
        return [d.token for d in db.query(PushDevice).filter(PushDevice.user_id == user_id).all()]

    @staticmethod
    def register(db: Session, user_id: str, token: str, user_agent: Optional[str] = None) -> PushDevice:
        device = db.query(PushDevice).filter(PushDevice.token == token).first()
        if device:
            device.user_id = user_id
            device.user_agent = user_agent or device.user_agent
            device.last_seen_at = utcnow()
        else:
            device = PushDevice(user_id=user_id, token=token, user_agent=user_agent)
            db.add(device)
        db.commit()
        db.refresh(device)
        return device

    @staticmethod
    def remove(db: Session, token: str, user_id: Optional[str] = None) -> bool:
        """Delete a token. With user_id, only when that user owns it."""
        query = db.query(PushDevice).filter(PushDevice.token == token)
        if user_id is not None:
            query = query.filter(PushDevice.user_id == user_id)
        deleted = query.delete()
        db.commit()
        return deleted > 0


class ReminderLogRepository:
    @staticmethod
    def was_sent(db: Session, job_id: str, reminder_key: str) -> bool:
        return (
            db.query(ReminderLog)
            .filter(ReminderLog.job_id == job_id, ReminderLog.reminder_key == reminder_key)
            .first()
            is not None
        )

    @staticmethod
    def record(db: Session, job_id: str, reminder_key: str, recipient_id: str) -> ReminderLog:
        entry = ReminderLog(job_id=job_id, reminder_key=reminder_key, recipient_id=recipient_id)
        db.add(entry)
        db.commit()
        return entry
