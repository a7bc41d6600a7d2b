"""
Replicated view of one server collection.

A ReplicatedView holds the current page of records, the page index and
size, the server's page count, the single active sort and an optional text
filter. It loads through its RemoteCollectionStore, renders into the
surface and hosts the edit sessions opened on its cells.

State machine:
    Idle --load()--> Loading --success--> Ready
                     Loading --failure--> Error (previous rows stay rendered)

Invariants:
    - index < total_pages once total_pages > 0
    - Fields the server cannot sort are sorted locally, stably, with None
      last ascending and first descending
    - A response older than the latest issued load is discarded
    - Rows with an open edit session are not replaced by a reload; the
      incoming copy is applied when the session closes
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

from .edit import EditSession
from .entities import EntityKind
from .errors import ConsoleError, ValidationError
from .models import DeleteOutcome, Record, SortDescriptor, same_id, toggle_sort
from .surface import RenderedRow, Table
from .validate import validate_payload

if TYPE_CHECKING:
    from .context import ConsoleContext
    from .store import RemoteCollectionStore

logger = logging.getLogger(__name__)


class ViewState(Enum):
    """Load state of a view."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def client_sort(
    records: List[Record],
    key: Callable[[Record], Any],
    ascending: bool = True,
) -> List[Record]:
    """Stable local sort.

    None sorts last ascending and first descending; strings compare
    case-insensitively; everything else by natural ordering.
    """
    present: List[Tuple[Any, Record]] = []
    missing: List[Record] = []
    for record in records:
        value = key(record)
        if value is None:
            missing.append(record)
        else:
            present.append((value.lower() if isinstance(value, str) else value, record))

    ordered = [r for _, r in sorted(present, key=lambda pair: pair[0], reverse=not ascending)]
    return ordered + missing if ascending else missing + ordered


class ReplicatedView:
    """Local, paginated cache of one entity collection.

    Attributes:
        kind: Entity kind shown by the view
        name: View name (the kind's collection name)
        state: Current ViewState
        records: Records of the current page
        index: Zero-based page index
        size: Page size
        total_pages: Page count from the last successful load
        sort: Active sort, or None
        filter_text: Active text filter ("" for none)
    """

    def __init__(
        self,
        kind: EntityKind,
        context: ConsoleContext,
        page_size: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.name = kind.name
        self._context = context
        self.state = ViewState.IDLE
        self.records: List[Record] = []
        self.index = 0
        self.size = page_size or context.settings.default_page_size
        self.total_pages = 0
        self.sort: Optional[SortDescriptor] = None
        self.filter_text = ""

        self._generation = 0
        self._cells: Dict[Tuple[str, str], str] = {}
        self._sessions: Dict[Tuple[str, str], EditSession] = {}
        self._deferred: Dict[str, Record] = {}
        self._saving = False

    @property
    def context(self) -> ConsoleContext:
        return self._context

    @property
    def store(self) -> RemoteCollectionStore:
        return self._context.store(self.kind)

    def __repr__(self) -> str:
        return (
            f"ReplicatedView(name={self.name!r}, state={self.state.value}, "
            f"index={self.index}, total_pages={self.total_pages})"
        )

    # -- loading -----------------------------------------------------------

    async def load(self) -> None:
        """Fetch the current page and render it.

        Errors are caught here and reported through the surface; the
        previously rendered rows stay in place.
        """
        self._generation += 1
        generation = self._generation
        self.state = ViewState.LOADING

        server_sort = self.sort if self.sort and self.sort.field in self.kind.server_sort_fields else None
        filters = None
        if self.kind.filter_param and self.filter_text:
            filters = {self.kind.filter_param: self.filter_text}

        try:
            page = await self.store.fetch_page(self.index, self.size, server_sort, filters)
        except ConsoleError as e:
            if generation != self._generation:
                logger.debug("Dropping failure of superseded load", extra={"view": self.name})
                return
            self.state = ViewState.ERROR
            logger.warning(
                "Load failed",
                extra={"view": self.name, "error": e.message, "code": e.code},
            )
            self._render()
            await self._context.surface.alert(f"Failed to load {self.kind.title}: {e.message}", "Error")
            return

        if generation != self._generation:
            logger.debug(
                "Discarding stale page",
                extra={"view": self.name, "generation": generation, "current": self._generation},
            )
            return

        if page.total_pages > 0 and self.index >= page.total_pages:
            self.index = page.total_pages - 1
            await self.load()
            return

        records = [self.kind.normalize(record) for record in page.records]
        if self.sort is not None and server_sort is None:
            sort = self.sort
            records = client_sort(
                records,
                lambda r: self.kind.client_sort_value(r, sort.field),
                ascending=sort.ascending,
            )

        self.records = self._merge_pinned(records)
        self.total_pages = page.total_pages
        self.state = ViewState.READY
        self._render()

    def _merge_pinned(self, incoming: List[Record]) -> List[Record]:
        """Keep locally edited rows in place, deferring their fresh copies."""
        pinned = {record_id for record_id, _ in self._sessions}
        if not pinned:
            return incoming

        merged = []
        for record in incoming:
            key = str(record.get("id"))
            local = self.find(record.get("id")) if key in pinned else None
            if local is not None:
                self._deferred[key] = record
                merged.append(local)
            else:
                merged.append(record)
        return merged

    # -- rendering ---------------------------------------------------------

    def _render(self) -> None:
        rows = []
        self._cells = {}
        for record in self.records:
            key = str(record.get("id"))
            cells = {column: self.kind.display(record, column) for column in self.kind.columns}
            for column, text in cells.items():
                self._cells[(key, column)] = text
            rows.append(RenderedRow(record_id=record.get("id"), cells=cells))

        sort_text = None
        if self.sort is not None:
            sort_text = f"{self.sort.field} {self.sort.direction.value}"
        self._context.surface.render_table(
            Table(
                view=self.name,
                columns=self.kind.columns,
                rows=rows,
                index=self.index,
                total_pages=self.total_pages,
                sort=sort_text,
                state=self.state.value,
            )
        )

    def cell_text(self, record_id: Any, field_name: str) -> Optional[str]:
        return self._cells.get((str(record_id), field_name))

    def set_cell(self, record_id: Any, field_name: str, text: str) -> None:
        self._cells[(str(record_id), field_name)] = text
        self._context.surface.render_cell(self.name, record_id, field_name, text)

    def find(self, record_id: Any) -> Optional[Record]:
        for record in self.records:
            if same_id(record.get("id"), record_id):
                return record
        return None

    # -- navigation --------------------------------------------------------

    async def sort_toggle(self, field_name: str) -> Optional[SortDescriptor]:
        """Cycle the sort on a field and reload from the first page."""
        self.sort = toggle_sort(self.sort, field_name)
        self.index = 0
        await self.load()
        return self.sort

    async def go_to_page(self, index: int) -> bool:
        """Move to a page and reload. Out-of-range indices are ignored."""
        if index < 0 or index >= self.total_pages:
            return False
        self.index = index
        await self.load()
        return True

    async def set_page_size(self, size: int) -> None:
        if size <= 0:
            raise ValueError(f"Page size must be positive, got {size}")
        self.size = size
        self.index = 0
        await self.load()

    async def set_filter(self, text: str) -> None:
        self.filter_text = text.strip()
        self.index = 0
        await self.load()

    def select(self, record_id: Any) -> Optional[Record]:
        record = self.find(record_id)
        self._context.selection.select(self.name, record)
        return record

    @property
    def selected(self) -> Optional[Record]:
        return self._context.selection.get(self.name)

    # -- editing -----------------------------------------------------------

    async def begin_edit(self, record_id: Any, field_name: str) -> EditSession:
        """Open an inline edit on one cell.

        Re-entering a cell whose session is still open returns that
        session unchanged.

        Raises:
            KeyError: If the record is not on the current page or the
                field is not editable
        """
        key = (str(record_id), field_name)
        existing = self._sessions.get(key)
        if existing is not None and not existing.closed:
            logger.debug("Edit already open", extra={"view": self.name, "cell": key})
            return existing

        record = self.find(record_id)
        if record is None:
            raise KeyError(f"{self.kind.title} {record_id} is not on the current page")
        field_def = self.kind.get_field(field_name)
        if field_def is None:
            raise KeyError(f"{self.kind.title} has no editable field '{field_name}'")

        session = EditSession(self, record, field_def)
        self._sessions[key] = session
        await session.open()
        return session

    def release(self, session: EditSession) -> None:
        """Forget a closed session and apply any reload it held back."""
        key = (str(session.target_id), session.field)
        if self._sessions.get(key) is session:
            del self._sessions[key]

        record_key = str(session.target_id)
        if any(rid == record_key for rid, _ in self._sessions):
            return
        incoming = self._deferred.pop(record_key, None)
        if incoming is None:
            return

        local = session.record
        local.clear()
        local.update(incoming)
        if session.committed:
            local.update(session.changes)
        for column in self.kind.columns:
            self.set_cell(session.target_id, column, self.kind.display(local, column))

    # -- create / update / delete -----------------------------------------

    async def save(self, form: Mapping[str, Any], record_id: Any = None) -> Optional[Record]:
        """Create (no id) or update a record from form values.

        A second call while one is in flight is ignored.
        """
        if self._saving:
            logger.info("Save already in progress", extra={"view": self.name})
            return None

        surface = self._context.surface
        is_valid, errors = validate_payload(self.kind, form)
        if not is_valid:
            error = ValidationError("; ".join(errors), errors=errors)
            await surface.alert(error.message, "Validation error")
            return None

        self._saving = True
        try:
            if record_id is None:
                record = await self.store.create(form)
            else:
                record = await self.store.update(record_id, form)
        except ConsoleError as e:
            await surface.alert(f"Save failed: {e.message}", "Error")
            return None
        finally:
            self._saving = False

        await surface.alert(f"{self.kind.title} {'created' if record_id is None else 'updated'}", "Success")
        self._context.selection.clear(self.name)
        await self.load()
        return record

    async def delete(self, record_id: Any) -> Optional[DeleteOutcome]:
        """Delete a record through the cascade resolver."""
        record = self.find(record_id) or {"id": record_id}
        outcome = await self._context.cascade.delete(self.kind, record)
        if outcome is None:
            return None

        self.records = [r for r in self.records if not same_id(r.get("id"), record_id)]
        self._context.selection.forget(self.name, record_id)
        self._render()
        await self.load()
        return outcome
