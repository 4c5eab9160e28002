"""
Real-time notification endpoints
WebSocket first, Server-Sent Events second, polling as the floor
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..domain.notifications.repository import NotificationRepository
from ..services.in_app_service import serialize_notification

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

AUTH_TIMEOUT_SECONDS = 5
SSE_KEEPALIVE_SECONDS = 15
POLL_LIMIT = 10


class HeartbeatRequest(BaseModel):
    userEmail: str


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket):
    """Expects {"type": "auth", "userEmail": ...} first, then answers pings and pushes notifications"""
    await websocket.accept()
    hub = websocket.app.state.realtime_hub

    try:
        frame = await asyncio.wait_for(websocket.receive_json(), timeout=AUTH_TIMEOUT_SECONDS)
    except (asyncio.TimeoutError, WebSocketDisconnect, ValueError):
        logger.warning("⚠️ WebSocket closed before authenticating")
        await _close_quietly(websocket, code=4001)
        return

    email = frame.get("userEmail") if isinstance(frame, dict) else None
    if not isinstance(frame, dict) or frame.get("type") != "auth" or not email:
        await _close_quietly(websocket, code=4001)
        return

    hub.add_socket(email, websocket)
    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "ping":
                hub.record_heartbeat(email)
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.warning(f"⚠️ Malformed frame from {email}: {e}")
    finally:
        hub.remove_socket(email, websocket)


async def _close_quietly(websocket: WebSocket, code: int) -> None:
    try:
        await websocket.close(code=code)
    except RuntimeError:
        # Already closed by the client
        pass


@router.get("/notifications/stream")
async def notifications_stream(request: Request, user: str = Query(...)):
    """Server-Sent Events stream. Each event's data is the notification JSON."""
    hub = request.app.state.realtime_hub
    queue = hub.open_stream(user)

    async def event_source():
        try:
            yield "retry: 3000\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(payload, default=str)}\n\n"
        finally:
            hub.close_stream(user, queue)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/notifications/poll")
async def poll_notifications(user: str = Query(...), db: Session = Depends(get_db)):
    """Latest unread notifications for the polling fallback"""
    notifications = NotificationRepository.get_unread_by_email(db, user, limit=POLL_LIMIT)
    return {"notifications": [serialize_notification(n) for n in notifications]}


@router.post("/notifications/heartbeat")
async def heartbeat(data: HeartbeatRequest, request: Request):
    request.app.state.realtime_hub.record_heartbeat(data.userEmail)
    return {"ok": True}
