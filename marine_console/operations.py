"""
Special operations on space marines.

SpecialOperations is the operator-facing side of UnitStore's extra
endpoints. Each operation validates its input locally, calls the server and
reports the result or the failure through the surface, the same way views
report loads and saves:
- average_heart_count: average heartCount over all marines
- count_by_health: number of marines with health below a threshold
- search_by_name: marines whose name contains a fragment
- remove_from_chapter: detach one marine from its chapter

Invariants:
    - Invalid input is rejected before any network call
    - Failures are shown once and returned as None/False, never raised
    - remove_from_chapter does not reload views itself; the server's push
      notification drives the reload through the invalidation router

How to change safely:
    - Keep new operations on UnitStore so error mapping stays in one place
    - Keep alert titles aligned with views ("Error", "Validation error")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List, Optional, cast

from .entities import UNITS
from .errors import ConsoleError
from .schema import parse_number
from .store import NameMatch, UnitStore

if TYPE_CHECKING:
    from .context import ConsoleContext

logger = logging.getLogger(__name__)


class SpecialOperations:
    """Aggregate queries and chapter removal, reported through the surface."""

    def __init__(self, context: ConsoleContext) -> None:
        self._context = context

    @property
    def _store(self) -> UnitStore:
        return cast(UnitStore, self._context.store(UNITS))

    async def average_heart_count(self) -> Optional[float]:
        surface = self._context.surface
        try:
            average = await self._store.average_heart_count()
        except ConsoleError as e:
            await surface.alert(e.message, "Error")
            return None
        if average is None:
            await surface.alert("There are no marines to average", "Result")
            return None
        await surface.alert(f"Average heart count: {average:.2f}", "Result")
        return average

    async def count_by_health(self, health: Any) -> Optional[int]:
        """Count marines with health below `health` (operator input, > 0)."""
        surface = self._context.surface
        threshold = parse_number(health, integer=True)
        if threshold is None or threshold < 1:
            await surface.alert("Health must be a number greater than 0", "Validation error")
            return None

        try:
            count = await self._store.count_by_health(threshold)
        except ConsoleError as e:
            await surface.alert(e.message, "Error")
            return None
        await surface.alert(f"Marines with health < {threshold}: {count}", "Result")
        return count

    async def search_by_name(self, fragment: str) -> Optional[List[NameMatch]]:
        surface = self._context.surface
        text = (fragment or "").strip()
        if not text:
            await surface.alert("Enter part of a name to search for", "Validation error")
            return None

        try:
            matches = await self._store.search_by_name(text)
        except ConsoleError as e:
            await surface.alert(e.message, "Error")
            return None

        if not matches:
            await surface.alert("Nothing found", "Result")
        else:
            lines = [f"Found {len(matches)} marines:"]
            lines.extend(f"  {match.name} (#{match.id})" for match in matches)
            await surface.alert("\n".join(lines), "Result")
        return matches

    async def remove_from_chapter(self, record_id: Any) -> bool:
        """Detach a marine from its chapter after operator confirmation.

        Returns:
            True if the server accepted the removal
        """
        surface = self._context.surface
        marine_id = parse_number(record_id, integer=True)
        if marine_id is None or marine_id < 1:
            await surface.alert("Enter a valid Space Marine id", "Validation error")
            return False

        store = self._store
        try:
            marine = await store.fetch_one(marine_id)
        except ConsoleError as e:
            await surface.alert(e.message, "Error")
            return False

        chapter = marine.get("chapter")
        if not isinstance(chapter, dict) or chapter.get("id") is None:
            await surface.alert(f'Space Marine "{marine.get("name")}" has no chapter', "Error")
            return False

        name, chapter_name = marine.get("name"), chapter.get("name")
        if not await surface.confirm(
            f'Remove "{name}" from chapter "{chapter_name}"?',
            "Confirm removal",
        ):
            return False

        try:
            await store.remove_from_chapter(marine_id)
        except ConsoleError as e:
            logger.warning(
                "Remove from chapter failed",
                extra={"id": marine_id, "error": e.message},
            )
            await surface.alert(f"Removal failed: {e.message}", "Error")
            return False

        await surface.alert(f'"{name}" removed from chapter "{chapter_name}"', "Success")
        return True
