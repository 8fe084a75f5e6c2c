"""
Completion Evaluator.

Decides whether a form response satisfies every required field of a form
schema. Pure: takes the schema dict and the response payload, returns a
result, never touches the database or the instance.

Schema shape (FormVersion.schema):
    {"sections": [{"id": "s1", "fields": [
        {"id": "customer_name", "type": "TEXT", "required": true}, ...]}]}

A field's payload key is its ``id`` (``name`` is accepted for older schemas).
"""

from collections.abc import Iterator
from dataclasses import dataclass

from printflow.core.exceptions import ValidationError
from printflow.models.forms import FIELD_TYPES
from printflow.services.field_values import coerce_value


@dataclass(frozen=True)
class FieldSpec:
    key: str
    type: str
    required: bool
    section_id: str | None = None
    label: str | None = None


@dataclass(frozen=True)
class CompletionResult:
    is_complete: bool
    missing_fields: tuple[str, ...]
    required_count: int

    def to_dict(self) -> dict:
        return {
            "is_complete": self.is_complete,
            "missing_fields": list(self.missing_fields),
            "required_count": self.required_count,
        }


_REQUIRED_STRINGS = {"true": True, "yes": True, "1": True, "false": False, "no": False, "0": False}


def _required_flag(key: str, flag) -> bool:
    if flag is None or isinstance(flag, bool):
        return bool(flag)
    if isinstance(flag, str) and flag.strip().lower() in _REQUIRED_STRINGS:
        return _REQUIRED_STRINGS[flag.strip().lower()]
    raise ValidationError(
        f"Form schema field '{key}' has an invalid 'required' flag",
        details={key: "required must be a boolean"},
    )


def iter_fields(schema: dict | None) -> Iterator[FieldSpec]:
    """Yield every field of every section, in schema order.

    Raises:
        ValidationError: If the schema is structurally malformed, or a field
            carries an unknown type or a non-boolean required flag.
    """
    if not schema:
        return
    sections = schema.get("sections")
    if sections is None:
        return
    if not isinstance(sections, list):
        raise ValidationError("Form schema 'sections' must be a list")

    for s_idx, section in enumerate(sections):
        if not isinstance(section, dict):
            raise ValidationError(f"Form schema section #{s_idx} must be an object")
        for f_idx, field in enumerate(section.get("fields") or []):
            key = field.get("id") or field.get("name") if isinstance(field, dict) else None
            if not key:
                raise ValidationError(
                    f"Form schema field #{f_idx} in section #{s_idx} has no id",
                )
            ftype = str(field.get("type", "TEXT")).upper()
            if ftype not in FIELD_TYPES:
                raise ValidationError(
                    f"Form schema field '{key}' has unknown type '{ftype}'",
                    details={key: f"type must be one of {sorted(FIELD_TYPES)}"},
                )
            yield FieldSpec(
                key=str(key),
                type=ftype,
                required=_required_flag(str(key), field.get("required")),
                section_id=section.get("id"),
                label=field.get("label"),
            )


def evaluate_completion(schema: dict | None, response_data: dict | None) -> CompletionResult:
    """Check every required field for a present, non-empty value.

    Args:
        schema: Versioned field schema of the instance's template.
        response_data: Current response payload, or None when nothing was submitted.

    Returns:
        CompletionResult listing the required field keys that are missing.
    """
    required = [f for f in iter_fields(schema) if f.required]
    if response_data is None:
        return CompletionResult(
            is_complete=not required,
            missing_fields=tuple(f.key for f in required),
            required_count=len(required),
        )

    missing = []
    for field in required:
        if field.key not in response_data:
            missing.append(field.key)
            continue
        if coerce_value(response_data[field.key], field.type).is_empty():
            missing.append(field.key)

    return CompletionResult(
        is_complete=not missing,
        missing_fields=tuple(missing),
        required_count=len(required),
    )


def is_complete(schema: dict | None, response_data: dict | None) -> bool:
    return evaluate_completion(schema, response_data).is_complete
