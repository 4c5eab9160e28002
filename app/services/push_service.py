"""
Web Push Service
Delivers push notifications to registered browsers through Firebase Cloud Messaging.
A user without a registered device has not granted notification permission.
"""

import asyncio
import logging
from typing import List, Optional

import firebase_admin
from firebase_admin import credentials, messaging
from sqlalchemy.orm import Session

from ..config import FIREBASE_PROJECT_ID
from ..domain.notifications.repository import PushDeviceRepository
from .notification_templates import PushPayload

logger = logging.getLogger(__name__)


def get_firebase_app():
    """Return the default Firebase app, initializing it on first use"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        try:
            cred = credentials.ApplicationDefault()
            app = firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
            logger.info("Firebase Admin initialized with default credentials")
        except Exception:
            app = firebase_admin.initialize_app(options={"projectId": FIREBASE_PROJECT_ID})
            logger.info("Firebase Admin initialized with project ID only")
        return app


def build_message(token: str, payload: PushPayload) -> messaging.Message:
    link = payload.data.get("url")
    return messaging.Message(
        token=token,
        data={key: str(value) for key, value in payload.data.items()},
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(
                title=payload.title,
                body=payload.body,
                icon=payload.icon,
                tag=payload.tag,
                require_interaction=payload.require_interaction,
                actions=[messaging.WebpushNotificationAction(a["action"], a["title"]) for a in payload.actions],
            ),
            # FCM only accepts HTTPS click-through links
            fcm_options=messaging.WebpushFCMOptions(link=link) if link and link.startswith("https://") else None,
        ),
    )


async def send_push(db: Session, user_id: str, payload: PushPayload) -> tuple[bool, Optional[str]]:
    """
    Send a web push notification to every device the user registered.

    Returns:
        Tuple of (success: bool, error_message: Optional[str]); success when at least one device accepted it
    """
    tokens: List[str] = PushDeviceRepository.list_tokens(db, user_id)
    if not tokens:
        logger.debug(f"🔔 No push permission for user {user_id}")
        return False, "Push permission not granted"

    if not FIREBASE_PROJECT_ID:
        logger.info(f"🔔 [DEV MODE] Would push to {user_id} ({len(tokens)} device(s)): {payload.title}")
        return True, None

    app = get_firebase_app()
    delivered = 0
    last_error = None
    for token in tokens:
        try:
            message_id = await asyncio.to_thread(messaging.send, build_message(token, payload), False, app)
            delivered += 1
            logger.debug(f"🔔 Push delivered to {user_id}: {message_id}")
        except messaging.UnregisteredError:
            logger.warning(f"⚠️ Removing unregistered push token for {user_id}")
            PushDeviceRepository.remove(db, token)
            last_error = "Push token unregistered"
        except Exception as e:
            logger.error(f"❌ Push send failed for {user_id}: {e}")
            last_error = str(e)

    if delivered:
        logger.info(f"✅ Push '{payload.tag}' sent to {user_id} ({delivered}/{len(tokens)} devices)")
        return True, None
    return False, last_error
