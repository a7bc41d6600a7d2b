"""
Push channel manager.

PushChannel owns the single persistent websocket to the server, reconnects
after a fixed delay whenever it drops, decodes each text frame into a
Notification and hands it to every registered listener.

Invariants:
    - Frames are dispatched strictly in arrival order
    - A failing listener is logged and never blocks the others
    - Registering the same listener twice has no additional effect
    - Reconnect delay is fixed; there is no retry cap

Example:
    >>> channel = PushChannel("ws://localhost:8080/ws/marines")
    >>> dispose = channel.subscribe(router.handle)
    >>> await channel.start()
    >>> ...
    >>> dispose()
    >>> await channel.stop()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Awaitable,
    Callable,
    List,
    Optional,
    Union,
)

import aiohttp

from .models import Notification

logger = logging.getLogger(__name__)

Listener = Callable[[Notification], Union[None, Awaitable[None]]]
Connector = Callable[[str], AsyncContextManager[AsyncIterator[str]]]


async def _text_frames(ws: aiohttp.ClientWebSocketResponse) -> AsyncIterator[str]:
    async for message in ws:
        if message.type == aiohttp.WSMsgType.TEXT:
            yield message.data
        elif message.type == aiohttp.WSMsgType.ERROR:
            raise ConnectionError(f"Websocket error: {ws.exception()}")


@asynccontextmanager
async def aiohttp_connector(
    url: str,
    heartbeat: Optional[float] = None,
) -> AsyncIterator[AsyncIterator[str]]:
    """Open a websocket and yield an iterator over its text frames.

    Args:
        url: ws:// or wss:// URL of the push channel
        heartbeat: Liveness ping interval in seconds, or None
    """
    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(url, heartbeat=heartbeat) as ws:
            yield _text_frames(ws)


class PushChannel:
    """One persistent, self-reconnecting push connection.

    Attributes:
        url: Push channel URL
        reconnect_delay: Seconds to wait before every reconnect attempt
        connect_count: Number of successful connections so far
    """

    def __init__(
        self,
        url: str,
        reconnect_delay: float = 3.0,
        heartbeat: Optional[float] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._connector: Connector = connector or partial(aiohttp_connector, heartbeat=heartbeat)
        self._listeners: List[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._connected = False
        self.connect_count = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a disposer that unsubscribes it."""
        if listener not in self._listeners:
            self._listeners.append(listener)
        return partial(self.unsubscribe, listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def dispatch(self, raw: str) -> Optional[Notification]:
        """Decode one frame and deliver it to every listener in order."""
        notification = Notification.parse(raw)
        if notification is None:
            return None

        logger.debug(
            "Push notification",
            extra={"kind": notification.kind, "subject_id": notification.subject_id},
        )
        for listener in list(self._listeners):
            try:
                result: Any = listener(notification)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Push listener failed",
                    extra={"kind": notification.kind, "listener": repr(listener)},
                )
        return notification

    async def start(self) -> None:
        """Start the connect/receive/reconnect loop in the background."""
        if self._running:
            logger.warning("Push channel already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name="push-channel")

    async def stop(self) -> None:
        """Stop the loop and close the connection."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._connected = False
        logger.info("Push channel stopped", extra={"url": self.url})

    async def _run(self) -> None:
        while self._running:
            try:
                async with self._connector(self.url) as frames:
                    self._connected = True
                    self.connect_count += 1
                    logger.info("Push channel connected", extra={"url": self.url})
                    async for raw in frames:
                        await self.dispatch(raw)
                logger.info("Push channel closed by server", extra={"url": self.url})
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Push channel error",
                    extra={"url": self.url, "error": str(e)},
                )
            finally:
                self._connected = False

            if not self._running:
                break
            logger.info(
                "Push channel disconnected, reconnecting",
                extra={"url": self.url, "delay_seconds": self.reconnect_delay},
            )
            await asyncio.sleep(self.reconnect_delay)
