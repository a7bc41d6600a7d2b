"""
Marine console - replicated-view client for the space marine registry.

This package keeps local, paginated projections of the server's
collections in sync with the REST API and its push channel:
- Entity kinds (units, chapters, coordinates) with field rules
- RemoteCollectionStore for REST access
- ReplicatedView with optimistic inline edits
- PushChannel and InvalidationRouter for cross-collection reloads
- CascadeResolver for delete-time dependency decisions
- SpecialOperations for marine statistics and removal from a chapter

Example:
    >>> from marine_console import Console, RecordingSurface, Settings
    >>>
    >>> async with Console(Settings(), RecordingSurface()) as console:
    ...     units = console.view("units")
    ...     await units.load()
    ...     session = await units.begin_edit(17, "health")
    ...     session.set_value("150")
    ...     await session.submit()

Invariants:
    - One push channel and one selection per console
    - The server performs cascades; the client only forwards decisions

Version: 1.0.0
"""

__version__ = "1.0.0"

from .cascade import CascadeResolver
from .channel import PushChannel
from .config import Settings
from .context import ConsoleContext, Selection
from .edit import EditSession, EditState
from .entities import CHAPTERS, COORDINATES, UNITS, EntityKind, get_kind
from .errors import (
    ConsoleError,
    FormatError,
    ServerRejection,
    TransportError,
    ValidationError,
)
from .main import Console, setup_logging
from .models import (
    DeleteOutcome,
    Notification,
    Page,
    RelatedSummary,
    SortDescriptor,
    SortDirection,
)
from .router import InvalidationRouter
from .operations import SpecialOperations
from .store import NameMatch, RemoteCollectionStore, UnitStore
from .surface import RecordingSurface, Surface, TerminalSurface
from .view import ReplicatedView, ViewState

__all__ = [
    # Version
    "__version__",
    # Composition
    "Console",
    "ConsoleContext",
    "Selection",
    "Settings",
    "setup_logging",
    # Entity kinds
    "EntityKind",
    "UNITS",
    "CHAPTERS",
    "COORDINATES",
    "get_kind",
    # Core
    "RemoteCollectionStore",
    "UnitStore",
    "NameMatch",
    "SpecialOperations",
    "ReplicatedView",
    "ViewState",
    "EditSession",
    "EditState",
    "PushChannel",
    "InvalidationRouter",
    "CascadeResolver",
    # Values
    "Page",
    "SortDescriptor",
    "SortDirection",
    "Notification",
    "RelatedSummary",
    "DeleteOutcome",
    # Surfaces
    "Surface",
    "TerminalSurface",
    "RecordingSurface",
    # Errors
    "ConsoleError",
    "TransportError",
    "FormatError",
    "ValidationError",
    "ServerRejection",
]
