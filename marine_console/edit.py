"""
Optimistic in-place edit of one cell.

An EditSession borrows one record from its view and walks it through:

    Editing --submit()/blur()--> Confirming --yes--> Committing --2xx--> Committed
       |                              |                   |
       +--cancel()--> RolledBack <----+--no/invalid       +--failure--> RolledBack

Invariants:
    - Only the first commit trigger proceeds; the state leaves Editing
      before any suspension point, so a later trigger is a no-op
    - The backing record is mutated only after the server accepts the update
    - A rolled-back cell shows its pre-edit display text
    - The session is released back to its view exactly once

How to change safely:
    - Keep the Editing -> Confirming transition synchronous in _finish()
    - New field kinds need a confirmation message and an options source
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .entities import format_value, get_kind
from .errors import ConsoleError
from .models import Record
from .schema import FieldDef, FieldKind
from .surface import Option, Surface

if TYPE_CHECKING:
    from .view import ReplicatedView

logger = logging.getLogger(__name__)

LOADING_TEXT = "Loading..."


class EditState(Enum):
    EDITING = "editing"
    CONFIRMING = "confirming"
    COMMITTING = "committing"
    ROLLED_BACK = "rolled_back"
    COMMITTED = "committed"


class EditSession:
    """One speculative edit of one field of one record.

    Attributes:
        target_id: Id of the edited record
        field: Flat field name
        original: Field value when the session opened
        value: Speculative value (operator input, as text)
        state: Current EditState
        options: Choices offered for enum and reference fields
        changes: Fields written to the record on commit
    """

    def __init__(self, view: ReplicatedView, record: Record, field_def: FieldDef) -> None:
        self.view = view
        self.record = record
        self.field_def = field_def
        self.target_id = record.get("id")
        self.field = field_def.name
        self.original: Any = record.get(field_def.name)
        self.value: str = "" if self.original is None else format_value(self.original)
        self.state = EditState.EDITING
        self.options: Optional[List[Option]] = None
        self.changes: Dict[str, Any] = {}

        self._original_text = view.kind.display(record, field_def.name)
        self._references: Dict[str, Record] = {}
        self._loading = False
        self._blur_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"EditSession(view={self.view.name!r}, id={self.target_id!r}, field={self.field!r}, state={self.state.value})"

    @property
    def closed(self) -> bool:
        return self.state in (EditState.ROLLED_BACK, EditState.COMMITTED)

    @property
    def committed(self) -> bool:
        return self.state == EditState.COMMITTED

    @property
    def _surface(self) -> Surface:
        return self.view.context.surface

    async def open(self) -> None:
        """Seed the editor, loading reference options first when needed."""
        field_def = self.field_def
        if field_def.kind == FieldKind.ENUM:
            self.options = [(v, v) for v in field_def.enum_values or ()]
        elif field_def.kind == FieldKind.REFERENCE:
            if not await self._load_references():
                return

        if self.options is not None and field_def.nullable:
            self.options.insert(0, ("", "-"))

        self._surface.open_editor(self.view.name, self.target_id, self.field, self.value, self.options)
        logger.debug("Edit opened", extra={"view": self.view.name, "id": self.target_id, "field": self.field})

    async def _load_references(self) -> bool:
        ref_kind = get_kind(self.field_def.ref_kind)
        settings = self.view.context.settings
        self._loading = True
        self.view.set_cell(self.target_id, self.field, LOADING_TEXT)
        try:
            records = await self.view.context.store(ref_kind).fetch_all(settings.reference_page_size)
        except ConsoleError as e:
            self._loading = False
            self._restore()
            await self._surface.alert(f"Failed to load {ref_kind.title} list: {e.message}", "Error")
            return False
        self._loading = False

        self.view.set_cell(self.target_id, self.field, self._original_text)
        self._references = {str(r.get("id")): r for r in records}
        self.options = [(str(r.get("id")), ref_kind.label(r)) for r in records]
        return True

    def set_value(self, value: Any) -> None:
        if self.state == EditState.EDITING:
            self.value = "" if value is None else str(value)

    async def submit(self) -> None:
        """Affirmative keystroke: commit immediately."""
        await self._finish()

    def blur(self) -> asyncio.Task:
        """Focus loss: commit after the grace delay unless already committing."""
        if self._blur_task is None:
            self._blur_task = asyncio.create_task(self._blur_after_grace(), name=f"blur-{self.field}")
        return self._blur_task

    async def _blur_after_grace(self) -> None:
        await asyncio.sleep(self.view.context.settings.commit_grace_delay)
        await self._finish()

    def cancel(self) -> None:
        """Discard the speculative value without confirmation."""
        if self.state != EditState.EDITING:
            return
        self._restore()

    def _restore(self) -> None:
        self.view.set_cell(self.target_id, self.field, self._original_text)
        self.state = EditState.ROLLED_BACK
        self.view.release(self)

    def _display_new(self, new_value: Any) -> str:
        if self.field_def.kind == FieldKind.REFERENCE:
            if new_value is None:
                return format_value(None)
            referenced = self._references.get(str(new_value))
            if referenced is not None:
                return get_kind(self.field_def.ref_kind).label(referenced)
        return format_value(new_value)

    async def _finish(self) -> None:
        if self.state != EditState.EDITING or self._loading:
            return
        self.state = EditState.CONFIRMING

        field_def = self.field_def
        surface = self._surface
        text = self.value.strip()
        new_value = field_def.coerce(text)

        if new_value == field_def.coerce(self.original) or (text == "" and field_def.required):
            self._restore()
            return

        problem = self.view.kind.validate_field(self.field, text)
        if problem is not None:
            self._restore()
            await surface.alert(problem, "Validation error")
            return

        new_display = self._display_new(new_value)
        if field_def.kind == FieldKind.REFERENCE:
            question = f'Change {field_def.label} to "{new_display}"?'
        else:
            question = f'Change {field_def.label} from "{self._original_text}" to "{new_display}"?'
        if not await surface.confirm(question, "Confirm change"):
            self._restore()
            return

        self.state = EditState.COMMITTING
        store = self.view.store
        try:
            current = self.view.kind.normalize(await store.fetch_one(self.target_id))
            current[self.field] = new_value
            await store.update(self.target_id, current)
        except ConsoleError as e:
            logger.warning(
                "Edit commit failed",
                extra={"view": self.view.name, "id": self.target_id, "field": self.field, "error": e.message},
            )
            self._restore()
            await surface.alert(f"Update failed: {e.message}", "Error")
            return

        self.changes = {self.field: new_value}
        if field_def.kind == FieldKind.REFERENCE and field_def.embedded:
            self.changes[field_def.embedded] = self._references.get(str(new_value)) if new_value is not None else None
        self.record.update(self.changes)
        self.view.set_cell(self.target_id, self.field, self.view.kind.display(self.record, self.field))
        self.view.context.selection.apply_update(self.view.name, self.target_id, self.changes)
        self.state = EditState.COMMITTED
        logger.info(
            "Edit committed",
            extra={"view": self.view.name, "id": self.target_id, "field": self.field},
        )
        self.view.release(self)
