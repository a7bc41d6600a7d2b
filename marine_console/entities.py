"""
Entity kinds managed by the console.

Each kind is a capability object: it knows its collection path, its field
definitions, how to render and sort its records, how to validate input and
serialize payloads, and how to read its delete-time dependency summary.
Per-kind behaviour lives in subclasses; nothing is patched after
construction.

Kinds:
    - UnitKind ("units"): space marines, the primary entity
    - ChapterKind ("chapters"): referenced by units via chapterId
    - CoordinatesKind ("coordinates"): referenced by units via coordinatesId

Invariants:
    - serialize() emits exactly the kind's own fields
    - Server-sortable fields are never re-sorted locally
    - normalize() lifts embedded reference ids onto the flat row
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, FrozenSet, List, Mapping, Optional

from .models import Record, RelatedSummary
from .schema import FieldDef, FieldKind, field
from .validate import validate_input

UNIT_CATEGORIES = ("ASSAULT", "SUPPRESSOR", "TERMINATOR", "CHAPLAIN")
WEAPON_TYPES = ("BOLT_PISTOL", "COMBI_FLAMER", "COMBI_PLASMA_GUN", "FLAMER", "MULTI_MELTA")

EMPTY_DISPLAY = "-"


def format_value(value: Any) -> str:
    """Render a scalar the way the table shows it."""
    if value is None or value == "":
        return EMPTY_DISPLAY
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class EntityKind:
    """Base capability object for one server collection.

    Subclasses set the class attributes and override label() and
    parse_related(); the remaining hooks have generic implementations
    driven by the field definitions.

    Attributes:
        name: Collection name used for routing and views
        title: Human-readable singular name
        path: REST collection path
        fields: Editable field definitions, in column order
        server_sort_fields: Fields the server's sortBy parameter accepts
        filter_param: Query parameter carrying the text filter, if any
        cascade_flags: Dependent kind -> delete query parameter
        dependent_kinds: Dependent kind -> entity kind name of its records
    """

    name: ClassVar[str] = ""
    title: ClassVar[str] = ""
    path: ClassVar[str] = ""
    fields: ClassVar[tuple[FieldDef, ...]] = ()
    server_sort_fields: ClassVar[FrozenSet[str]] = frozenset()
    filter_param: ClassVar[Optional[str]] = None
    cascade_flags: ClassVar[Dict[str, str]] = {}
    dependent_kinds: ClassVar[Dict[str, str]] = {}

    @property
    def columns(self) -> List[str]:
        return ["id"] + [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldDef]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def reference_fields(self) -> List[FieldDef]:
        return [f for f in self.fields if f.kind == FieldKind.REFERENCE]

    def label(self, record: Mapping[str, Any]) -> str:
        """Human label used in reference lists and prompts."""
        raise NotImplementedError

    def describe(self, record: Mapping[str, Any]) -> str:
        return f"{self.label(record)} (ID: {record.get('id')})"

    def display(self, record: Mapping[str, Any], field_name: str) -> str:
        """Rendered text for one cell."""
        field_def = self.get_field(field_name)
        if field_def is not None and field_def.kind == FieldKind.REFERENCE:
            embedded = record.get(field_def.embedded) if field_def.embedded else None
            if embedded:
                return get_kind(field_def.ref_kind).label(embedded)
            return format_value(record.get(field_name))
        return format_value(record.get(field_name))

    def client_sort_value(self, record: Mapping[str, Any], field_name: str) -> Any:
        """Key used when a field must be sorted locally."""
        return record.get(field_name)

    def normalize(self, record: Record) -> Record:
        """Make embedded reference ids addressable by their flat name."""
        for field_def in self.reference_fields():
            embedded = record.get(field_def.embedded) if field_def.embedded else None
            if record.get(field_def.name) is None and isinstance(embedded, dict):
                if embedded.get("id") is not None:
                    record[field_def.name] = embedded["id"]
        return record

    def validate_field(self, field_name: str, raw: Any) -> Optional[str]:
        field_def = self.get_field(field_name)
        if field_def is None:
            return f"Unknown field '{field_name}' for {self.title}"
        return validate_input(field_def, raw)

    def serialize(self, source: Mapping[str, Any]) -> Dict[str, Any]:
        """Build a create/update body holding only this kind's fields."""
        return {f.name: f.coerce(source.get(f.name)) for f in self.fields}

    def parse_related(self, data: Mapping[str, Any]) -> RelatedSummary:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, path={self.path!r})"


class UnitKind(EntityKind):
    """Space marines: the primary entity, referencing chapters and coordinates."""

    name = "units"
    title = "Space Marine"
    path = "/api/spacemarines"
    fields = (
        field("name", "str", required=True, title="Name"),
        field("health", "int", required=True, title="Health", min_value=1),
        field("heartCount", "int", required=True, title="Heart count", min_value=1, max_value=3),
        field("category", "enum", required=True, title="Category", enum_values=UNIT_CATEGORIES),
        field("weaponType", "enum", required=True, title="Weapon type", enum_values=WEAPON_TYPES),
        field(
            "coordinatesId",
            "ref",
            required=True,
            title="Coordinates",
            ref_kind="coordinates",
            embedded="coordinates",
        ),
        field("chapterId", "ref", title="Chapter", ref_kind="chapters", embedded="chapter"),
    )
    server_sort_fields = frozenset({"id", "name", "health", "heartCount", "category", "weaponType"})
    filter_param = "nameFilter"
    cascade_flags = {"coordinates": "deleteCoordinates", "chapter": "deleteChapter"}
    dependent_kinds = {"coordinates": "coordinates", "chapter": "chapters"}

    _EMBEDDED_SORT = {"coordinates": "coordinates", "coordinatesId": "coordinates",
                      "chapter": "chapter", "chapterId": "chapter"}

    def label(self, record: Mapping[str, Any]) -> str:
        return format_value(record.get("name"))

    def client_sort_value(self, record: Mapping[str, Any], field_name: str) -> Any:
        embedded = self._EMBEDDED_SORT.get(field_name)
        if embedded == "coordinates":
            coords = record.get("coordinates")
            if not coords:
                return None
            return f"{format_value(coords.get('x'))},{format_value(coords.get('y'))}"
        if embedded == "chapter":
            chapter = record.get("chapter")
            return chapter.get("name") if chapter else None
        return super().client_sort_value(record, field_name)

    def parse_related(self, data: Mapping[str, Any]) -> RelatedSummary:
        dependents: Dict[str, List[Record]] = {}
        if data.get("hasCoordinates") and data.get("coordinates"):
            dependents["coordinates"] = [dict(data["coordinates"])]
        if data.get("hasChapter") and data.get("chapter"):
            dependents["chapter"] = [dict(data["chapter"])]
        return RelatedSummary(dependents=dependents)


class _ReferencedKind(EntityKind):
    """Kinds that units point at; their dependents are units."""

    # deleteMarines is this console's own wire contract. Servers that do not
    # cascade from chapters or coordinates ignore the query parameter.
    cascade_flags = {"units": "deleteMarines"}
    dependent_kinds = {"units": "units"}

    def parse_related(self, data: Mapping[str, Any]) -> RelatedSummary:
        marines = data.get("relatedSpaceMarines") or []
        return RelatedSummary(dependents={"units": [dict(m) for m in marines]})


class ChapterKind(_ReferencedKind):
    """Chapters a marine may belong to."""

    name = "chapters"
    title = "Chapter"
    path = "/api/chapters"
    fields = (
        field("name", "str", required=True, title="Name"),
        field(
            "marinesCount",
            "int",
            required=True,
            title="Marines count",
            min_value=1,
            max_value=1000,
        ),
    )
    server_sort_fields = frozenset({"id", "name", "marinesCount"})

    def label(self, record: Mapping[str, Any]) -> str:
        return format_value(record.get("name"))


class CoordinatesKind(_ReferencedKind):
    """Coordinates every marine must carry. The y axis is nullable."""

    name = "coordinates"
    title = "Coordinates"
    path = "/api/coordinates"
    fields = (
        field("x", "float", required=True, title="X"),
        field("y", "float", title="Y"),
    )
    server_sort_fields = frozenset({"id", "x", "y"})

    def label(self, record: Mapping[str, Any]) -> str:
        return f"x:{format_value(record.get('x'))}, y:{format_value(record.get('y'))}"


UNITS = UnitKind()
CHAPTERS = ChapterKind()
COORDINATES = CoordinatesKind()

_KINDS: Dict[str, EntityKind] = {kind.name: kind for kind in (UNITS, CHAPTERS, COORDINATES)}


def get_kind(name: Optional[str]) -> EntityKind:
    """Look up an entity kind by collection name."""
    try:
        return _KINDS[name or ""]
    except KeyError:
        raise KeyError(f"Unknown entity kind '{name}'. Known: {sorted(_KINDS)}") from None


def all_kinds() -> List[EntityKind]:
    return list(_KINDS.values())
