"""
Marine console - composition root.

This module wires the console components together:
- Shared httpx client for every RemoteCollectionStore
- ConsoleContext (selection, stores, router, cascade resolver)
- One ReplicatedView per entity kind
- The single PushChannel feeding the InvalidationRouter

Usage:
    async with Console(settings, surface) as console:
        await console.views["units"].load()

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Exactly one push channel per console
    - The router is subscribed before the channel starts
    - stop() disposes the subscription before closing the channel

How to change safely:
    - New views must be added through ConsoleContext.add_view
    - Test shutdown with the channel both connected and reconnecting
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

import httpx
import json_log_formatter

from .channel import Connector, PushChannel
from .config import Settings
from .context import ConsoleContext
from .entities import all_kinds
from .operations import SpecialOperations
from .surface import Surface, TerminalSurface
from .view import ReplicatedView

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: Console settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


class Console:
    """Console orchestrator.

    Manages the lifecycle of the HTTP client, the push channel and the
    views.

    Attributes:
        settings: Console settings
        surface: Presentation surface
        context: Shared context (available after start())
        views: View name -> ReplicatedView

    Example:
        >>> console = Console(Settings(), RecordingSurface())
        >>> await console.start()
        >>> await console.views["units"].load()
        >>> await console.stop()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        surface: Optional[Surface] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connector: Optional[Connector] = None,
        live: bool = True,
    ) -> None:
        """Initialize the console.

        Args:
            settings: Console settings (loaded from env if not provided)
            surface: Presentation surface
            transport: Optional httpx transport (tests use httpx.MockTransport)
            connector: Optional push connector replacing the websocket
            live: Whether to start the push channel
        """
        self.settings = settings or Settings()
        self.surface: Surface = surface or TerminalSurface()
        self.live = live
        self._transport = transport
        self._connector = connector
        self._running = False

        self.http: Optional[httpx.AsyncClient] = None
        self.channel: Optional[PushChannel] = None
        self.context: Optional[ConsoleContext] = None
        self._dispose: Optional[Callable[[], None]] = None

    @property
    def views(self) -> Dict[str, ReplicatedView]:
        return self.context.views if self.context is not None else {}

    def view(self, name: str) -> ReplicatedView:
        return self.views[name]

    @property
    def operations(self) -> SpecialOperations:
        if self.context is None:
            raise RuntimeError("Console is not started")
        return self.context.operations

    async def start(self) -> None:
        """Build the components and connect the push channel."""
        if self._running:
            logger.warning("Console already running")
            return

        logger.info(
            "Starting marine console",
            extra={"base_url": self.settings.base_url, "live": self.live},
        )

        self.http = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout,
            transport=self._transport,
        )
        self.channel = PushChannel(
            self.settings.push_url,
            reconnect_delay=self.settings.reconnect_delay,
            heartbeat=self.settings.heartbeat,
            connector=self._connector,
        )
        self.context = ConsoleContext(self.settings, self.surface, self.http, self.channel)
        for kind in all_kinds():
            self.context.add_view(ReplicatedView(kind, self.context))

        self._dispose = self.channel.subscribe(self.context.router.handle)
        if self.live:
            await self.channel.start()

        self._running = True
        logger.info("Marine console started", extra={"views": sorted(self.views)})

    async def stop(self) -> None:
        """Stop the push channel and close the HTTP client."""
        if not self._running:
            return

        logger.info("Stopping marine console")

        if self._dispose is not None:
            self._dispose()
            self._dispose = None

        if self.channel is not None:
            await self.channel.stop()

        if self.context is not None:
            await self.context.router.drain()

        if self.http is not None:
            await self.http.aclose()

        self._running = False
        logger.info("Marine console stopped")

    async def __aenter__(self) -> Console:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
