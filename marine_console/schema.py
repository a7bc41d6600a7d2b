"""
Field definitions for console entity kinds.

This module provides the building blocks every entity kind is described with:
- FieldKind: Scalar, enumerated or reference field types
- FieldDef: Individual field definition with range/nullability rules
- field: Convenience constructor

Invariants:
    - Reference fields name the collection they point into
    - A nullable numeric field maps empty input to None, never to 0
    - Non-nullable numeric fields coerce not-a-number input to 0

Example:
    >>> health = field("health", "int", required=True, min_value=1)
    >>> health.coerce("150")
    150
    >>> field("y", "float").coerce("")
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any


class FieldKind(Enum):
    """Supported field types."""

    STRING = "str"
    INTEGER = "int"
    FLOAT = "float"
    ENUM = "enum"
    REFERENCE = "ref"

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string to FieldKind."""
        for kind in cls:
            if kind.value == value:
                return kind
        raise ValueError(f"Invalid field kind: {value}")

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.INTEGER, FieldKind.FLOAT)


def parse_number(text: Any, integer: bool = False) -> float | int | None:
    """Parse operator input as a number, or None if it is not one.

    Integer parsing truncates a fractional input the way a form's
    integer field does ("12.7" -> 12).
    """
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        number = text
    else:
        try:
            number = float(str(text).strip())
        except ValueError:
            return None
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return None
    if integer:
        return int(number)
    return float(number)


@dataclass(frozen=True)
class FieldDef:
    """Field definition within an entity kind.

    Attributes:
        name: Wire name of the field (flat, as addressed by edits)
        kind: Data type
        required: Whether an empty value is rejected
        title: Human-readable name used in prompts
        enum_values: Valid values for enum type
        ref_kind: Target collection name for references
        embedded: Name of the nested object the server embeds for a reference
        min_value: Inclusive lower bound for numeric fields
        max_value: Inclusive upper bound for numeric fields
    """

    name: str
    kind: FieldKind
    required: bool = False
    title: str = ""
    enum_values: tuple[str, ...] | None = None
    ref_kind: str | None = None
    embedded: str | None = None
    min_value: float | None = None
    max_value: float | None = None

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind == FieldKind.ENUM and not self.enum_values:
            raise ValueError(f"enum_values required for ENUM field '{self.name}'")
        if self.kind == FieldKind.REFERENCE and not self.ref_kind:
            raise ValueError(f"ref_kind required for REFERENCE field '{self.name}'")

    @property
    def nullable(self) -> bool:
        return not self.required

    @property
    def label(self) -> str:
        return self.title or self.name

    def coerce(self, value: Any) -> Any:
        """Convert operator input or a stored value to its wire form."""
        empty = value is None or (isinstance(value, str) and value.strip() == "")

        if self.kind.is_numeric:
            if empty and self.nullable:
                return None
            number = parse_number(value, integer=self.kind == FieldKind.INTEGER)
            if number is None:
                return None if self.nullable else 0
            return number

        if self.kind == FieldKind.REFERENCE:
            if empty:
                return None
            ref_id = parse_number(value, integer=True)
            return ref_id

        if self.kind == FieldKind.ENUM:
            return None if empty else str(value).strip()

        if empty:
            return None if self.nullable else ""
        return str(value).strip()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if self.required:
            result["required"] = True
        if self.enum_values:
            result["enum_values"] = list(self.enum_values)
        if self.ref_kind is not None:
            result["ref_kind"] = self.ref_kind
        if self.min_value is not None:
            result["min_value"] = self.min_value
        if self.max_value is not None:
            result["max_value"] = self.max_value
        return result


def field(
    name: str,
    kind: str | FieldKind,
    *,
    required: bool = False,
    title: str = "",
    enum_values: tuple[str, ...] | None = None,
    ref_kind: str | None = None,
    embedded: str | None = None,
    min_value: float | None = None,
    max_value: float | None = None,
) -> FieldDef:
    """Convenience function to create a FieldDef.

    Example:
        >>> count = field("marinesCount", "int", required=True, min_value=1, max_value=1000)
        >>> chapter = field("chapterId", "ref", ref_kind="chapters", embedded="chapter")
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(
        name=name,
        kind=kind,
        required=required,
        title=title,
        enum_values=enum_values,
        ref_kind=ref_kind,
        embedded=embedded,
        min_value=min_value,
        max_value=max_value,
    )
