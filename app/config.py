import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cleaning_jobs.db")

# Frontend base URL used in notification links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
BRAND_NAME = os.getenv("BRAND_NAME", "CleanEnroll")

# Firebase Configuration (web push via FCM)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
PUSH_DEFAULT_ICON = os.getenv("PUSH_DEFAULT_ICON", "/icon-192.png")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "CleanEnroll <noreply@cleanenroll.com>")

# Twilio SMS Configuration - SMS runs in dev mode (log only) when unset
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")

# Job lifecycle rules
GEOFENCE_RADIUS_METERS = float(os.getenv("GEOFENCE_RADIUS_METERS", "250"))
MIN_PHOTOS_PER_PHASE = int(os.getenv("MIN_PHOTOS_PER_PHASE", "3"))
DEFAULT_ETA_MINUTES = int(os.getenv("DEFAULT_ETA_MINUTES", "15"))

# Real-time transport (seconds)
REALTIME_WS_URL = os.getenv("REALTIME_WS_URL", "ws://localhost:8000/ws")
REALTIME_SSE_URL = os.getenv("REALTIME_SSE_URL", f"{API_BASE_URL}/notifications/stream")
REALTIME_POLL_URL = os.getenv("REALTIME_POLL_URL", f"{API_BASE_URL}/notifications/poll")
REALTIME_HEARTBEAT_URL = os.getenv(
    "REALTIME_HEARTBEAT_URL", f"{API_BASE_URL}/notifications/heartbeat"
)
REALTIME_CONNECT_TIMEOUT = float(os.getenv("REALTIME_CONNECT_TIMEOUT", "5"))
REALTIME_POLL_INTERVAL = float(os.getenv("REALTIME_POLL_INTERVAL", "30"))
REALTIME_POLL_MAX_FAILURES = int(os.getenv("REALTIME_POLL_MAX_FAILURES", "3"))
REALTIME_HEARTBEAT_INTERVAL = float(os.getenv("REALTIME_HEARTBEAT_INTERVAL", "30"))
REALTIME_RECONNECT_INTERVAL = float(os.getenv("REALTIME_RECONNECT_INTERVAL", "3"))
REALTIME_MAX_RECONNECT_DELAY = float(os.getenv("REALTIME_MAX_RECONNECT_DELAY", "30"))
REALTIME_MAX_RECONNECT_ATTEMPTS = int(os.getenv("REALTIME_MAX_RECONNECT_ATTEMPTS", "10"))

# Wall-clock zone for scheduled job times and quiet hours
LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "UTC")

# Quiet hours - SMS and push held back between these local hours unless urgent
QUIET_HOURS_ENABLED = os.getenv("QUIET_HOURS_ENABLED", "true").lower() == "true"
QUIET_HOURS_START = int(os.getenv("QUIET_HOURS_START", "21"))
QUIET_HOURS_END = int(os.getenv("QUIET_HOURS_END", "8"))

# Proactive cleaner reminders (0 disables the background check)
REMINDER_CHECK_INTERVAL = float(os.getenv("REMINDER_CHECK_INTERVAL", "60"))
LATE_ARRIVAL_GRACE_MINUTES = int(os.getenv("LATE_ARRIVAL_GRACE_MINUTES", "5"))
PHOTO_REMINDER_AFTER_MINUTES = int(os.getenv("PHOTO_REMINDER_AFTER_MINUTES", "30"))
