"""
Real-time transport strategies, tried in priority order by RealTimeSession.

Each strategy opens a TransportConnection for one user. A connection exposes
listen() (returns or raises when the channel drops), heartbeat() and close().
"""

import asyncio
import json
import logging
from collections import deque
from contextlib import AsyncExitStack
from typing import Awaitable, Callable, Deque, List, Optional, Set

import httpx
import websockets
from httpx_sse import aconnect_sse

from .. import config

logger = logging.getLogger(__name__)

MessageCallback = Callable[[dict], Awaitable[None]]


class TransportConnection:
    mode = "unknown"

    async def listen(self, on_message: MessageCallback) -> None:
        raise NotImplementedError

    async def heartbeat(self) -> None:
        """Keep-alive. Transports without one do nothing."""

    async def close(self) -> None:
        raise NotImplementedError


class TransportStrategy:
    mode = "unknown"
    # None means the strategy is trusted to open without a deadline
    connect_timeout: Optional[float] = None
    sends_heartbeat = False

    async def open(self, user_email: str) -> TransportConnection:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------


class WebSocketConnection(TransportConnection):
    mode = "websocket"

    def __init__(self, websocket):
        self.websocket = websocket

    async def listen(self, on_message: MessageCallback) -> None:
        async for raw in self.websocket:
            try:
                data = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning(f"⚠️ Ignoring malformed WebSocket frame: {raw!r}")
                continue
            if data.get("type") == "notification":
                await on_message(data.get("payload") or {})
            elif data.get("type") == "pong":
                logger.debug("📡 WebSocket pong")

    async def heartbeat(self) -> None:
        await self.websocket.send(json.dumps({"type": "ping"}))

    async def close(self) -> None:
        await self.websocket.close()


class WebSocketStrategy(TransportStrategy):
    mode = "websocket"
    sends_heartbeat = True

    def __init__(self, url: str, connect_timeout: float = config.REALTIME_CONNECT_TIMEOUT):
        self.url = url
        self.connect_timeout = connect_timeout

    async def open(self, user_email: str) -> TransportConnection:
        websocket = await websockets.connect(self.url)
        await websocket.send(json.dumps({"type": "auth", "userEmail": user_email}))
        logger.info(f"📡 WebSocket connected to {self.url}")
        return WebSocketConnection(websocket)


# ---------------------------------------------------------------------------
# Server-Sent Events
# ---------------------------------------------------------------------------


class SSEConnection(TransportConnection):
    mode = "sse"

    def __init__(self, stack: AsyncExitStack, client: httpx.AsyncClient, event_source, heartbeat_url: str, user_email: str):
        self._stack = stack
        self.client = client
        self.event_source = event_source
        self.heartbeat_url = heartbeat_url
        self.user_email = user_email

    async def listen(self, on_message: MessageCallback) -> None:
        async for sse in self.event_source.aiter_sse():
            if not sse.data:
                continue
            try:
                payload = json.loads(sse.data)
            except ValueError:
                logger.warning(f"⚠️ Ignoring malformed SSE data: {sse.data!r}")
                continue
            await on_message(payload)

    async def heartbeat(self) -> None:
        response = await self.client.post(self.heartbeat_url, json={"userEmail": self.user_email})
        response.raise_for_status()

    async def close(self) -> None:
        await self._stack.aclose()


class SSEStrategy(TransportStrategy):
    mode = "sse"
    sends_heartbeat = True

    def __init__(
        self,
        url: str,
        heartbeat_url: str,
        connect_timeout: float = config.REALTIME_CONNECT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.heartbeat_url = heartbeat_url
        self.connect_timeout = connect_timeout
        self.transport = transport

    async def open(self, user_email: str) -> TransportConnection:
        stack = AsyncExitStack()
        try:
            # Read timeout disabled: the stream stays open between events
            client = await stack.enter_async_context(
                httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None), transport=self.transport)
            )
            event_source = await stack.enter_async_context(
                aconnect_sse(client, "GET", self.url, params={"user": user_email})
            )
            event_source.response.raise_for_status()
        except BaseException:
            await stack.aclose()
            raise
        logger.info(f"📡 SSE stream opened at {self.url}")
        return SSEConnection(stack, client, event_source, self.heartbeat_url, user_email)


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class PollingConnection(TransportConnection):
    mode = "polling"
    # Ids remembered for dedupe, oldest forgotten first
    seen_capacity = 500

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        user_email: str,
        interval: float,
        sleep=asyncio.sleep,
        max_failures: int = config.REALTIME_POLL_MAX_FAILURES,
    ):
        self.client = client
        self.url = url
        self.user_email = user_email
        self.interval = interval
        self.max_failures = max_failures
        self._sleep = sleep
        self._seen: Set[str] = set()
        self._seen_order: Deque[str] = deque()
        self._backlog: List[dict] = []

    def _remember(self, notification_id: str) -> None:
        self._seen.add(notification_id)
        self._seen_order.append(notification_id)
        while len(self._seen_order) > self.seen_capacity:
            self._seen.discard(self._seen_order.popleft())

    async def poll_once(self) -> List[dict]:
        """Fetch unread notifications and return the ones not delivered yet"""
        response = await self.client.get(self.url, params={"user": self.user_email})
        response.raise_for_status()
        body = response.json()
        items = body.get("notifications", []) if isinstance(body, dict) else body
        fresh = []
        for item in items:
            notification_id = item.get("id")
            if notification_id in self._seen:
                continue
            if notification_id:
                self._remember(notification_id)
            fresh.append(item)
        return fresh

    async def prime(self) -> None:
        """First poll. Raises when the server is unreachable so the session can fall through."""
        self._backlog = await self.poll_once()

    async def listen(self, on_message: MessageCallback) -> None:
        backlog, self._backlog = self._backlog, []
        for notification in backlog:
            await on_message(notification)

        failures = 0
        while True:
            await self._sleep(self.interval)
            try:
                fresh = await self.poll_once()
            except httpx.HTTPError as e:
                failures += 1
                logger.warning(f"⚠️ Polling failed for {self.user_email} ({failures}/{self.max_failures}): {e}")
                if failures >= self.max_failures:
                    raise
                continue
            failures = 0
            for notification in fresh:
                await on_message(notification)

    async def close(self) -> None:
        await self.client.aclose()


class PollingStrategy(TransportStrategy):
    mode = "polling"

    def __init__(
        self,
        url: str,
        interval: float = config.REALTIME_POLL_INTERVAL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connect_timeout: Optional[float] = None,
    ):
        self.url = url
        self.interval = interval
        self.transport = transport
        self.connect_timeout = connect_timeout

    async def open(self, user_email: str) -> TransportConnection:
        client = httpx.AsyncClient(timeout=10.0, transport=self.transport)
        connection = PollingConnection(client, self.url, user_email, self.interval)
        try:
            await connection.prime()
        except BaseException:
            await client.aclose()
            raise
        logger.info(f"📡 Falling back to polling {self.url} every {self.interval:.0f}s")
        return connection


def build_default_strategies() -> List[TransportStrategy]:
    """WebSocket, then SSE, then polling"""
    return [
        WebSocketStrategy(config.REALTIME_WS_URL),
        SSEStrategy(config.REALTIME_SSE_URL, config.REALTIME_HEARTBEAT_URL),
        PollingStrategy(config.REALTIME_POLL_URL),
    ]
