"""
Tagged field values for form response payloads.

Response payloads arrive as loose JSON. Before the completion check looks at
them, every raw value is coerced into a ``FieldValue`` whose ``kind`` says
which emptiness rule applies, so "is this answered?" is decided per type
instead of by truthiness (``0`` and ``False`` are answers, ``None`` is not).

Usage:
    from printflow.services.field_values import coerce_value

    coerce_value(0, "NUMBER").is_empty()        # False
    coerce_value("   ", "TEXT").is_empty()      # True
    coerce_value([], "MULTISELECT").is_empty()  # True
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class ValueKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    LIST = "list"
    OBJECT = "object"
    NULL = "null"


@dataclass(frozen=True)
class FieldValue:
    """A response value tagged with its kind."""

    kind: ValueKind
    value: object = None

    def is_empty(self) -> bool:
        if self.kind is ValueKind.NULL:
            return True
        if self.kind is ValueKind.STRING:
            return not self.value.strip()
        if self.kind is ValueKind.NUMBER:
            return self.value is None or (isinstance(self.value, float) and math.isnan(self.value))
        if self.kind is ValueKind.BOOLEAN:
            return False
        if self.kind is ValueKind.DATE:
            return self.value is None
        if self.kind is ValueKind.LIST:
            return all(item.is_empty() for item in self.value)
        if self.kind is ValueKind.OBJECT:
            return not self.value
        raise AssertionError(f"unhandled kind {self.kind}")

    def to_python(self):
        """Unwrap back to plain JSON-compatible data."""
        if self.kind is ValueKind.LIST:
            return [item.to_python() for item in self.value]
        if self.kind is ValueKind.OBJECT:
            return {k: v.to_python() for k, v in self.value.items()}
        if self.kind is ValueKind.DATE and self.value is not None:
            return self.value.isoformat()
        return self.value


NULL = FieldValue(ValueKind.NULL)


def from_raw(raw) -> FieldValue:
    """Tag a raw JSON value by its Python type."""
    if raw is None:
        return NULL
    # bool before int: bool is an int subclass
    if isinstance(raw, bool):
        return FieldValue(ValueKind.BOOLEAN, raw)
    if isinstance(raw, (int, float)):
        return FieldValue(ValueKind.NUMBER, raw)
    if isinstance(raw, str):
        return FieldValue(ValueKind.STRING, raw)
    if isinstance(raw, (date, datetime)):
        return FieldValue(ValueKind.DATE, raw)
    if isinstance(raw, (list, tuple)):
        return FieldValue(ValueKind.LIST, tuple(from_raw(item) for item in raw))
    if isinstance(raw, dict):
        return FieldValue(ValueKind.OBJECT, {str(k): from_raw(v) for k, v in raw.items()})
    raise TypeError(f"Unsupported response value type: {type(raw).__name__}")


def _parse_number(raw: str) -> FieldValue:
    try:
        return FieldValue(ValueKind.NUMBER, float(raw))
    except ValueError:
        return FieldValue(ValueKind.NUMBER, None)


def _parse_date(raw: str) -> FieldValue:
    text = raw.strip()
    if not text:
        return NULL
    try:
        # date-only text stays a date; datetime.fromisoformat accepts it too
        if "T" not in text and " " not in text:
            return FieldValue(ValueKind.DATE, date.fromisoformat(text))
        return FieldValue(ValueKind.DATE, datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return FieldValue(ValueKind.DATE, None)


def coerce_value(raw, field_type: str) -> FieldValue:
    """Tag a raw value using the schema field type as a hint.

    NUMBER fields accept numeric strings, DATE fields parse ISO strings; text
    that does not parse is an empty NUMBER or DATE. Everything else is tagged
    by its Python type.
    """
    if isinstance(raw, str):
        if field_type == "NUMBER":
            return _parse_number(raw)
        if field_type == "DATE":
            return _parse_date(raw)
    return from_raw(raw)
