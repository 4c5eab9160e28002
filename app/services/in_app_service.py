"""In-app notification records"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.notifications.repository import NotificationRepository
from ..models_notification import Notification, UserProfile
from .notification_templates import RenderedNotification

logger = logging.getLogger(__name__)


def serialize_notification(notification: Notification) -> dict:
    """Wire shape used by the WebSocket, SSE and polling transports"""
    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "recipient_email": notification.recipient_email,
        "job_id": notification.job_id,
        "type": notification.notification_type,
        "title": notification.title,
        "message": notification.message,
        "payload": notification.payload or {},
        "link": notification.link,
        "priority": notification.priority,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


def create_in_app_notification(
    db: Session,
    recipient: UserProfile,
    rendered: RenderedNotification,
    job_id: Optional[str] = None,
    payload: Optional[dict] = None,
) -> Notification:
    notification = NotificationRepository.create(
        db,
        recipient_id=recipient.user_id,
        recipient_email=recipient.email,
        job_id=job_id,
        notification_type=rendered.notification_type,
        title=rendered.title,
        message=rendered.message,
        payload=payload or {},
        link=rendered.link,
        priority=rendered.priority,
    )
    logger.debug(f"In-app notification {notification.id} created for {recipient.user_id}")
    return notification
