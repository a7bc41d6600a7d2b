"""
Input validation for console entity kinds.

This module provides validation utilities:
- Single-field validation of raw operator input (inline edits)
- Whole-payload validation (form saves)

Invariants:
    - Validation never touches the network
    - Error messages name the field by its human title
    - Unknown fields suggest similar valid fields
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Tuple

from .errors import ValidationError
from .schema import FieldDef, FieldKind, parse_number

if TYPE_CHECKING:
    from .entities import EntityKind


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_input(field_def: FieldDef, raw: Any) -> Optional[str]:
    """Validate a single raw value against a field.

    Returns error message if invalid, None if valid.
    """
    if _is_empty(raw):
        if field_def.required:
            return f"{field_def.label} is required"
        return None

    if field_def.kind.is_numeric:
        number = parse_number(raw, integer=field_def.kind == FieldKind.INTEGER)
        if number is None:
            return f"{field_def.label} must be a number"
        low, high = field_def.min_value, field_def.max_value
        if low is not None and high is not None and not (low <= number <= high):
            return f"{field_def.label} must be between {_fmt(low)} and {_fmt(high)}"
        if low is not None and number < low:
            return f"{field_def.label} must be at least {_fmt(low)}"
        if high is not None and number > high:
            return f"{field_def.label} must be at most {_fmt(high)}"

    elif field_def.kind == FieldKind.ENUM:
        if field_def.enum_values and str(raw).strip() not in field_def.enum_values:
            return f"{field_def.label} must be one of {', '.join(field_def.enum_values)}"

    elif field_def.kind == FieldKind.REFERENCE:
        if parse_number(raw, integer=True) is None:
            return f"{field_def.label} must reference a valid id"

    return None


def _fmt(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


def validate_payload(
    kind: EntityKind,
    payload: Mapping[str, Any],
) -> Tuple[bool, List[str]]:
    """Validate a form payload against an entity kind.

    Args:
        kind: Entity kind to validate against
        payload: Raw form values keyed by field name

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []

    known = {f.name for f in kind.fields}
    for name in sorted(set(payload.keys()) - known - {"id"}):
        suggestions = get_close_matches(name, sorted(known), n=3)
        if suggestions:
            errors.append(f"Unknown field '{name}'. Did you mean: {suggestions}?")
        else:
            errors.append(f"Unknown field '{name}'")

    for field_def in kind.fields:
        error = kind.validate_field(field_def.name, payload.get(field_def.name))
        if error:
            errors.append(error)

    return len(errors) == 0, errors


def validate_or_raise(
    kind: EntityKind,
    payload: Mapping[str, Any],
) -> None:
    """Validate payload and raise if invalid.

    Raises:
        ValidationError: If validation fails
    """
    is_valid, errors = validate_payload(kind, payload)
    if not is_valid:
        raise ValidationError(
            f"Validation failed for {kind.title}: {'; '.join(errors)}",
            errors=errors,
        )
