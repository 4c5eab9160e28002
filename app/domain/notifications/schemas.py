"""Notification domain schemas"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class NotificationPreferences(BaseModel):
    in_app: bool = True
    email: bool = True
    sms: bool = True
    push: bool = True


class NotificationPreferencesUpdate(BaseModel):
    in_app: Optional[bool] = None
    email: Optional[bool] = None
    sms: Optional[bool] = None
    push: Optional[bool] = None


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: Optional[str] = None
    notification_type: str
    title: str
    message: str
    payload: Optional[Dict[str, Any]] = None
    link: Optional[str] = None
    priority: str
    is_read: bool
    created_at: Optional[datetime] = None


class PushDeviceRequest(BaseModel):
    token: str
    user_agent: Optional[str] = None
