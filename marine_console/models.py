"""
Core data types shared by the console components.

This module defines the structured values that flow between the store,
the views, the push channel and the cascade resolver:
- Record: one entity instance as held locally
- Page: one fetched page of a collection
- SortDescriptor: the single active sort of a view
- Notification: a decoded push-channel message
- RelatedSummary / DeleteOutcome: delete-time dependency data

Invariants:
    - Page.index < Page.total_pages once total_pages > 0
    - At most one SortDescriptor is active per view
    - Raw push frames are decoded exactly once, into Notification
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

Record = Dict[str, Any]
"""Mapping from field name to scalar, nested object, or foreign-key id."""


def same_id(left: Any, right: Any) -> bool:
    """Compare ids that may arrive as int or str."""
    if left is None or right is None:
        return False
    return str(left) == str(right)


class SortDirection(Enum):
    """Direction of the active sort."""

    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class SortDescriptor:
    """The active sort of a view.

    Attributes:
        field: Field the view is sorted by
        direction: ascending or descending
    """

    field: str
    direction: SortDirection = SortDirection.ASCENDING

    @property
    def ascending(self) -> bool:
        return self.direction == SortDirection.ASCENDING


def toggle_sort(current: Optional[SortDescriptor], field_name: str) -> Optional[SortDescriptor]:
    """Advance the sort cycle for a field.

    absent -> ascending -> descending -> absent. Selecting a different
    field discards the prior sort and starts at ascending.
    """
    if current is None or current.field != field_name:
        return SortDescriptor(field_name, SortDirection.ASCENDING)
    if current.ascending:
        return SortDescriptor(field_name, SortDirection.DESCENDING)
    return None


@dataclass
class Page:
    """One page of a server collection.

    Attributes:
        records: Ordered records of the page
        index: Zero-based page index
        size: Requested page size
        total_pages: Total page count reported by the server
    """

    records: List[Record]
    index: int
    size: int
    total_pages: int


@dataclass(frozen=True)
class Notification:
    """A push-channel message identifying what changed server-side.

    Attributes:
        kind: Opaque change tag (e.g. "chapter_updated")
        subject_id: Id of the changed record, if the server sent one
    """

    kind: str
    subject_id: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> Optional[Notification]:
        """Decode a "kind:subjectId" frame. Blank frames decode to None."""
        text = raw.strip()
        if not text:
            return None
        kind, sep, subject = text.partition(":")
        return cls(kind=kind, subject_id=subject if sep and subject else None)


@dataclass
class RelatedSummary:
    """Records that depend on (or are referenced by) a delete target.

    Attributes:
        dependents: Dependent kind -> records of that kind
    """

    dependents: Dict[str, List[Record]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(self.dependents.values())

    def kinds(self) -> List[str]:
        return [kind for kind, records in self.dependents.items() if records]


@dataclass
class DeleteOutcome:
    """Result of a delete call.

    Attributes:
        message: Server message for the operator
        coordinates_deleted: Whether the server cascaded into coordinates
        chapter_deleted: Whether the server cascaded into a chapter
    """

    message: str
    coordinates_deleted: bool = False
    chapter_deleted: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DeleteOutcome:
        return cls(
            message=str(data.get("message") or "Deleted"),
            coordinates_deleted=bool(data.get("coordinatesDeleted", False)),
            chapter_deleted=bool(data.get("chapterDeleted", False)),
        )
