"""Notification router - inbox, channel preferences and push device registration"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ..jobs.service import Actor
from .repository import NotificationRepository, PreferenceRepository, PushDeviceRepository
from .schemas import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    NotificationResponse,
    PushDeviceRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return NotificationRepository.list_for_user(db, actor.id, unread_only=unread_only, limit=limit)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    notification = NotificationRepository.get(db, notification_id)
    if not notification or notification.recipient_id != actor.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationRepository.mark_read(db, notification)


@router.post("/read-all")
async def mark_all_read(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    count = NotificationRepository.mark_all_read(db, actor.id)
    return {"message": "Notifications marked as read", "count": count}


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Channel preferences - every channel is on until the user turns it off"""
    return NotificationPreferences(**PreferenceRepository.get_channels(db, actor.id))


@router.put("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    data: NotificationPreferencesUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    PreferenceRepository.upsert(db, actor.id, **data.model_dump(exclude_none=True))
    logger.info(f"✅ Notification preferences updated for {actor.id}")
    return NotificationPreferences(**PreferenceRepository.get_channels(db, actor.id))


@router.post("/push-devices", status_code=201)
async def register_push_device(
    data: PushDeviceRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Called after the browser grants notification permission"""
    device = PushDeviceRepository.register(db, actor.id, data.token, data.user_agent)
    logger.info(f"🔔 Push device registered for {actor.id}")
    return {"id": device.id, "registered": True}


@router.delete("/push-devices/{token}")
async def unregister_push_device(
    token: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    removed = PushDeviceRepository.remove(db, token, user_id=actor.id)
    return {"removed": removed}
