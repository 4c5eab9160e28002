"""
Real-Time Session
Keeps one live notification channel open for a user.

connect() walks the strategy list (WebSocket, SSE, polling) until one opens within
its timeout. Once connected, WebSocket and SSE send a heartbeat; an unexpected drop
triggers reconnects with linear backoff until the attempt limit is reached.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from .. import config
from .transports import TransportConnection, TransportStrategy, build_default_strategies

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class RealTimeSession:
    def __init__(
        self,
        strategies: Optional[List[TransportStrategy]] = None,
        heartbeat_interval: float = config.REALTIME_HEARTBEAT_INTERVAL,
        reconnect_interval: float = config.REALTIME_RECONNECT_INTERVAL,
        max_reconnect_delay: float = config.REALTIME_MAX_RECONNECT_DELAY,
        max_reconnect_attempts: int = config.REALTIME_MAX_RECONNECT_ATTEMPTS,
    ):
        self.strategies = strategies if strategies is not None else build_default_strategies()
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_delay = max_reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts

        self.user_email: Optional[str] = None
        self.mode: Optional[str] = None
        self.status = ConnectionStatus.DISCONNECTED
        self.reconnect_attempts = 0

        self._subscribers: List[Callable[[dict], Any]] = []
        self._status_listeners: List[Callable[[ConnectionStatus], Any]] = []
        self._connection: Optional[TransportConnection] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[dict], Any]) -> Callable[[], None]:
        """Receive every inbound notification. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_status_change(self, callback: Callable[[ConnectionStatus], Any]) -> Callable[[], None]:
        self._status_listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._status_listeners:
                self._status_listeners.remove(callback)

        return unsubscribe

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self.status:
            return
        self.status = status
        logger.info(f"📡 Real-time status for {self.user_email}: {status.value} ({self.mode or 'no transport'})")
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"❌ Status listener failed: {e}")

    async def _dispatch(self, payload: dict) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"❌ Notification subscriber failed: {e}")

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, user_email: str) -> bool:
        """Open a channel for the user. Resets the reconnect attempt counter."""
        await self._teardown()
        self._closed = False
        self.user_email = user_email
        self.reconnect_attempts = 0
        return await self._establish()

    async def _establish(self) -> bool:
        self._set_status(ConnectionStatus.CONNECTING)
        for strategy in self.strategies:
            try:
                if strategy.connect_timeout:
                    connection = await asyncio.wait_for(strategy.open(self.user_email), strategy.connect_timeout)
                else:
                    connection = await strategy.open(self.user_email)
            except asyncio.TimeoutError:
                logger.warning(
                    f"⚠️ {strategy.mode} did not connect within {strategy.connect_timeout}s, trying next transport"
                )
                continue
            except Exception as e:
                logger.warning(f"⚠️ {strategy.mode} connection failed ({e}), trying next transport")
                continue

            if self._closed:
                await self._close_quietly(connection)
                return False

            self._connection = connection
            self.mode = strategy.mode
            self._listen_task = asyncio.create_task(self._listen(connection))
            if strategy.sends_heartbeat:
                self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(connection))
            self._set_status(ConnectionStatus.CONNECTED)
            logger.info(f"✅ Real-time connected for {self.user_email} via {strategy.mode}")
            return True

        logger.error(f"❌ No real-time transport available for {self.user_email}")
        self.mode = None
        self._set_status(ConnectionStatus.ERROR)
        self._schedule_reconnect()
        return False

    async def _listen(self, connection: TransportConnection) -> None:
        try:
            await connection.listen(self._dispatch)
            logger.warning(f"⚠️ {connection.mode} channel closed for {self.user_email}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ {connection.mode} channel failed for {self.user_email}: {e}")

        if self._closed:
            return
        self._cancel(self._heartbeat_task)
        self._heartbeat_task = None
        self._connection = None
        await self._close_quietly(connection)
        self._set_status(ConnectionStatus.ERROR)
        self._schedule_reconnect()

    async def _heartbeat_loop(self, connection: TransportConnection) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await connection.heartbeat()
            except Exception as e:
                # The listener notices a dead channel and handles reconnects
                logger.warning(f"⚠️ Heartbeat failed on {connection.mode}: {e}")

    def reconnect_delay(self, attempt: int) -> float:
        return min(self.reconnect_interval * attempt, self.max_reconnect_delay)

    def _schedule_reconnect(self) -> None:
        if self._closed:
            return
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            logger.error(
                f"❌ Giving up on real-time for {self.user_email} after {self.reconnect_attempts} attempts"
            )
            self.mode = None
            self._set_status(ConnectionStatus.DISCONNECTED)
            return

        self.reconnect_attempts += 1
        delay = self.reconnect_delay(self.reconnect_attempts)
        logger.info(
            f"📡 Reconnecting {self.user_email} in {delay:.1f}s "
            f"(attempt {self.reconnect_attempts}/{self.max_reconnect_attempts})"
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if not self._closed:
            await self._establish()

    async def disconnect(self) -> None:
        """Close the channel and cancel pending reconnects and heartbeats. Safe to call repeatedly."""
        was_open = not self._closed
        self._closed = True
        await self._teardown()
        if was_open:
            self.mode = None
            self._set_status(ConnectionStatus.DISCONNECTED)

    async def _teardown(self) -> None:
        tasks = [self._reconnect_task, self._heartbeat_task, self._listen_task]
        self._reconnect_task = self._heartbeat_task = self._listen_task = None
        current = asyncio.current_task()
        pending = [task for task in tasks if task is not None and task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        connection, self._connection = self._connection, None
        if connection is not None:
            await self._close_quietly(connection)

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    @staticmethod
    async def _close_quietly(connection: TransportConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing {connection.mode}: {e}")

    @property
    def pending_reconnect(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()
