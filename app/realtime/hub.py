"""
Real-Time Hub
Tracks live WebSocket and SSE clients per user email and pushes notifications to them.
One hub per process, created in the application lifespan.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Optional, Set

from ..shared.timekeeping import utcnow

logger = logging.getLogger(__name__)

SSE_QUEUE_SIZE = 100


class RealtimeHub:
    def __init__(self):
        self._sockets: Dict[str, Set[Any]] = defaultdict(set)
        self._streams: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._heartbeats: Dict[str, datetime] = {}

    # WebSocket clients

    def add_socket(self, email: str, websocket) -> None:
        self._sockets[email].add(websocket)
        logger.info(f"📡 WebSocket connected for {email} ({len(self._sockets[email])} open)")

    def remove_socket(self, email: str, websocket) -> None:
        sockets = self._sockets.get(email)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            self._sockets.pop(email, None)
        logger.info(f"📡 WebSocket closed for {email}")

    # SSE clients

    def open_stream(self, email: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SSE_QUEUE_SIZE)
        self._streams[email].add(queue)
        self._heartbeats[email] = utcnow()
        logger.info(f"📡 SSE stream opened for {email}")
        return queue

    def close_stream(self, email: str, queue: asyncio.Queue) -> None:
        streams = self._streams.get(email)
        if streams is None:
            return
        streams.discard(queue)
        if not streams:
            self._streams.pop(email, None)
        logger.info(f"📡 SSE stream closed for {email}")

    def record_heartbeat(self, email: str) -> None:
        self._heartbeats[email] = utcnow()

    def last_heartbeat(self, email: str) -> Optional[datetime]:
        return self._heartbeats.get(email)

    def is_connected(self, email: str) -> bool:
        return bool(self._sockets.get(email) or self._streams.get(email))

    async def publish(self, email: Optional[str], payload: dict) -> int:
        """Push a notification to every live client of the user. Returns the number of clients reached."""
        if not email:
            return 0

        delivered = 0
        for websocket in list(self._sockets.get(email, ())):
            try:
                await websocket.send_json({"type": "notification", "payload": payload})
                delivered += 1
            except Exception as e:
                logger.warning(f"⚠️ Dropping dead WebSocket for {email}: {e}")
                self.remove_socket(email, websocket)

        for queue in list(self._streams.get(email, ())):
            try:
                queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"⚠️ SSE queue full for {email}, notification left for polling")

        if delivered:
            logger.debug(f"📡 Notification {payload.get('id')} pushed to {delivered} client(s) of {email}")
        return delivered
