"""
Delete-time dependency resolution.

Before any delete the resolver asks the server which records relate to the
target. With no related records the operator gets a plain confirmation and
the DELETE carries no cascade flags. Otherwise the related records are
listed and the operator decides, per related kind, whether the server
should cascade; the DELETE then carries every decision as an explicit flag.
The server, not the client, performs the cascade.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from .entities import EntityKind, get_kind
from .errors import ConsoleError
from .models import DeleteOutcome, Record, RelatedSummary

if TYPE_CHECKING:
    from .context import ConsoleContext

logger = logging.getLogger(__name__)


class CascadeResolver:
    """Runs the related-objects check and the delete call."""

    def __init__(self, context: ConsoleContext) -> None:
        self._context = context

    def _choices(self, kind: EntityKind, summary: RelatedSummary) -> Dict[str, List[str]]:
        choices: Dict[str, List[str]] = {}
        for dependent in summary.kinds():
            dependent_kind = get_kind(kind.dependent_kinds.get(dependent, dependent))
            choices[dependent] = [dependent_kind.describe(r) for r in summary.dependents[dependent]]
        return choices

    async def delete(self, kind: EntityKind, record: Record) -> Optional[DeleteOutcome]:
        """Resolve dependents, obtain the operator's decision, then delete.

        Returns:
            The server's DeleteOutcome, or None if the operator cancelled or
            the delete failed (the failure has already been shown).
        """
        surface = self._context.surface
        store = self._context.store(kind)
        target_id = record.get("id")
        label = kind.label(record)

        try:
            summary = await store.fetch_related(target_id)
        except ConsoleError as e:
            logger.warning(
                "Related lookup failed",
                extra={"kind": kind.name, "id": target_id, "error": e.message},
            )
            await surface.alert(f"Could not load related objects: {e.message}", "Error")
            return None

        cascade: Optional[Dict[str, bool]] = None
        if summary.is_empty:
            if not await surface.confirm(f'Delete {kind.title} "{label}"?', "Confirm delete"):
                return None
        else:
            choices = self._choices(kind, summary)
            lines = [f'You are about to delete {kind.title} "{label}". Related objects:']
            for dependent, described in choices.items():
                lines.extend(f"  {dependent}: {text}" for text in described)
            decision = await surface.choose_cascade("\n".join(lines), choices)
            if decision is None:
                logger.info("Delete cancelled", extra={"kind": kind.name, "id": target_id})
                return None
            cascade = {
                kind.cascade_flags[dependent]: bool(decision.get(dependent, False))
                for dependent in choices
                if dependent in kind.cascade_flags
            }

        try:
            outcome = await store.remove(target_id, cascade)
        except ConsoleError as e:
            await surface.alert(e.message, "Error")
            return None

        await surface.alert(outcome.message, "Success")
        return outcome
