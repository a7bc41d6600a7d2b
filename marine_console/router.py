"""
Cross-collection invalidation.

Maps push notification kinds to the views that must reload. Unit rows embed
a denormalized display of their chapter and coordinates, so a change to
either referenced kind reloads its own view and the unit view. A unit
change reloads only the unit view.

Invariants:
    - Unrecognized kinds are ignored, not errors
    - Reloads are full load() calls, never row-level patches
    - Each triggered load() runs as an independent task
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Protocol, Set, Tuple

from .models import Notification

logger = logging.getLogger(__name__)

DEFAULT_ROUTES: Dict[str, Tuple[str, ...]] = {
    "created": ("units",),
    "updated": ("units",),
    "deleted": ("units",),
    "chapter_created": ("chapters", "units"),
    "chapter_updated": ("chapters", "units"),
    "chapter_deleted": ("chapters", "units"),
    "coordinates_created": ("coordinates", "units"),
    "coordinates_updated": ("coordinates", "units"),
    "coordinates_deleted": ("coordinates", "units"),
    "imported": ("units", "chapters", "coordinates"),
    "chapters_imported": ("chapters", "units"),
    "coordinates_imported": ("coordinates", "units"),
}


class Reloadable(Protocol):
    """Anything the router can reload."""

    name: str

    async def load(self) -> None:
        ...


class InvalidationRouter:
    """Turns notifications into reloads of the affected views.

    Example:
        >>> router = InvalidationRouter()
        >>> router.register(units_view)
        >>> router.register(chapters_view)
        >>> router.handle(Notification("chapter_updated", "7"))  # reloads both
    """

    def __init__(self, routes: Optional[Mapping[str, Tuple[str, ...]]] = None) -> None:
        self._routes: Dict[str, Tuple[str, ...]] = dict(routes if routes is not None else DEFAULT_ROUTES)
        self._views: Dict[str, Reloadable] = {}
        self._pending: Set[asyncio.Task] = set()

    def register(self, view: Reloadable) -> None:
        self._views[view.name] = view

    def unregister(self, name: str) -> None:
        self._views.pop(name, None)

    def targets(self, kind: str) -> Tuple[str, ...]:
        """View names a notification kind invalidates."""
        return self._routes.get(kind, ())

    def handle(self, notification: Notification) -> List[asyncio.Task]:
        """Start a reload of every view the notification invalidates."""
        names = self.targets(notification.kind)
        if not names:
            logger.debug("Ignoring notification", extra={"kind": notification.kind})
            return []

        tasks = []
        for name in names:
            view = self._views.get(name)
            if view is None:
                continue
            task = asyncio.create_task(view.load(), name=f"reload-{name}")
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)

        logger.info(
            "Invalidated views",
            extra={
                "kind": notification.kind,
                "subject_id": notification.subject_id,
                "views": [t.get_name() for t in tasks],
            },
        )
        return tasks

    async def drain(self) -> None:
        """Wait until every reload started so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
