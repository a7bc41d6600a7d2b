"""
Shared console context.

ConsoleContext is built once by the composition root and injected into
every view, edit session and the cascade resolver. It owns what would
otherwise be ambient globals: the per-view selection, the stores, the
single push channel, the invalidation router and the surface.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import httpx

from .cascade import CascadeResolver
from .config import Settings
from .entities import EntityKind, all_kinds
from .models import Record, same_id
from .router import InvalidationRouter
from .operations import SpecialOperations
from .store import RemoteCollectionStore, make_store
from .surface import Surface

if TYPE_CHECKING:
    from .channel import PushChannel
    from .view import ReplicatedView

logger = logging.getLogger(__name__)


class Selection:
    """The record the operator has selected in each view."""

    def __init__(self) -> None:
        self._selected: Dict[str, Record] = {}

    def select(self, view: str, record: Optional[Record]) -> None:
        if record is None:
            self.clear(view)
        else:
            self._selected[view] = record

    def get(self, view: str) -> Optional[Record]:
        return self._selected.get(view)

    def clear(self, view: str) -> None:
        self._selected.pop(view, None)

    def apply_update(self, view: str, record_id: Any, changes: Mapping[str, Any]) -> bool:
        """Mirror a committed change into the selection if it aliases the same id."""
        selected = self._selected.get(view)
        if selected is None or not same_id(selected.get("id"), record_id):
            return False
        selected.update(changes)
        return True

    def forget(self, view: str, record_id: Any) -> None:
        selected = self._selected.get(view)
        if selected is not None and same_id(selected.get("id"), record_id):
            self.clear(view)


class ConsoleContext:
    """Everything the console components share.

    Attributes:
        settings: Console settings
        surface: Presentation surface
        stores: Entity kind name -> RemoteCollectionStore
        selection: Per-view selection
        operations: Special operations on marines
        router: Invalidation router fed by the push channel
        channel: The single push channel (None when running offline)
        views: View name -> ReplicatedView
    """

    def __init__(
        self,
        settings: Settings,
        surface: Surface,
        http: httpx.AsyncClient,
        channel: Optional[PushChannel] = None,
    ) -> None:
        self.settings = settings
        self.surface = surface
        self.http = http
        self.channel = channel
        self.stores: Dict[str, RemoteCollectionStore] = {
            kind.name: make_store(kind, http) for kind in all_kinds()
        }
        self.selection = Selection()
        self.router = InvalidationRouter()
        self.cascade: CascadeResolver = CascadeResolver(self)
        self.operations = SpecialOperations(self)
        self.views: Dict[str, ReplicatedView] = {}

    def store(self, kind: EntityKind | str) -> RemoteCollectionStore:
        name = kind if isinstance(kind, str) else kind.name
        return self.stores[name]

    def add_view(self, view: ReplicatedView) -> ReplicatedView:
        self.views[view.name] = view
        self.router.register(view)
        return view
