"""
Twilio SMS Service
Sends job lifecycle SMS through the Twilio REST API.
Without credentials the service runs in dev mode: messages are logged, not sent.
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from .. import config
from ..models_notification import SMSLog
from ..shared.validators import validate_e164

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def is_configured() -> bool:
    return bool(config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN)


def _log_sms(
    db: Session,
    to_phone: str,
    message_body: str,
    message_type: str,
    job_id: Optional[str],
    status: str,
    message_sid: Optional[str] = None,
    error_message: Optional[str] = None,
) -> None:
    try:
        db.add(
            SMSLog(
                to_phone=to_phone,
                message_body=message_body,
                message_type=message_type,
                job_id=job_id,
                twilio_message_sid=message_sid,
                status=status,
                error_message=error_message,
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to write SMS log for {to_phone}: {e}")


async def send_sms(
    db: Session,
    to_phone: str,
    message_body: str,
    message_type: str,
    job_id: Optional[str] = None,
    priority: str = "normal",
) -> tuple[bool, Optional[str]]:
    """
    Send SMS via Twilio

    Args:
        db: Database session
        to_phone: Recipient phone number in E.164 format
        message_body: SMS message content
        message_type: Type of message (cleaner_en_route, extra_time_request, etc.)
        job_id: Optional job the message is about
        priority: normal | high | urgent, only used for logging

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        logger.debug("No phone number provided")
        return False, "No phone number provided"

    try:
        to_phone = validate_e164(to_phone)
    except ValueError as e:
        logger.warning(f"Phone number not in E.164 format: {to_phone}")
        return False, str(e)

    if not is_configured():
        logger.info(f"📱 [DEV MODE] [{priority.upper()}] Would send SMS to {to_phone}: {message_body}")
        _log_sms(db, to_phone, message_body, message_type, job_id, status="dev_mode")
        return True, None

    account_sid = config.TWILIO_ACCOUNT_SID
    data = {"To": to_phone, "Body": message_body}
    if config.TWILIO_MESSAGING_SERVICE_SID:
        data["MessagingServiceSid"] = config.TWILIO_MESSAGING_SERVICE_SID
    else:
        data["From"] = config.TWILIO_PHONE_NUMBER

    try:
        logger.info(f"📱 Sending SMS: type={message_type}, to={to_phone}, priority={priority}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, config.TWILIO_AUTH_TOKEN),
                data=data,
                timeout=10.0,
            )

        logger.info(f"📡 Twilio API response status: {response.status_code}")

        if response.status_code in [200, 201]:
            message_sid = response.json().get("sid")
            _log_sms(db, to_phone, message_body, message_type, job_id, status="sent", message_sid=message_sid)
            logger.info(f"✅ SMS sent successfully: {message_type} to {to_phone} (SID: {message_sid})")
            return True, None

        error_data = response.json()
        error_message = error_data.get("message", "Unknown error")
        error_code = error_data.get("code")
        _log_sms(
            db,
            to_phone,
            message_body,
            message_type,
            job_id,
            status="failed",
            error_message=f"[{error_code}] {error_message}" if error_code else error_message,
        )
        logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
        return False, error_message

    except httpx.HTTPError as e:
        logger.error(f"❌ Twilio API error: {str(e)}")
        _log_sms(db, to_phone, message_body, message_type, job_id, status="failed", error_message=str(e))
        return False, str(e)
