# ==== SUBMISSION VALIDATION ==== #

"""
Validation of public form submissions against the form's field definitions.

Returns a mapping of field name to Norwegian error message; an empty mapping
means the submission is accepted. Layout fields (headings, paragraphs,
dividers) are ignored.
"""

import re
from typing import Any, Dict, Iterable

from kundedata.business.enums import FieldType, LAYOUT_FIELD_TYPES, OPTION_FIELD_TYPES
from kundedata.schemas.common import is_valid_email, is_valid_phone


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "."))
    except ValueError:
        return None


def validate_field(field, value: Any) -> str | None:
    """Validate one value; returns an error message or None."""
    field_type = FieldType(field.type)

    if _is_empty(value):
        if field.required:
            return f"{field.label} er påkrevd"
        return None

    # A required checkbox must be ticked
    if field_type == FieldType.CHECKBOX and not field.options and field.required:
        if value in (False, "false", "off", "0"):
            return f"{field.label} er påkrevd"

    if field_type == FieldType.EMAIL and not is_valid_email(str(value)):
        return "Ugyldig e-postadresse"

    if field_type == FieldType.PHONE and not is_valid_phone(str(value)):
        return "Ugyldig telefonnummer"

    if field_type == FieldType.NUMBER:
        number = _as_number(value)
        if number is None:
            return f"{field.label} må være et tall"
        if field.min_value is not None and number < field.min_value:
            return f"{field.label} må være minst {field.min_value:g}"
        if field.max_value is not None and number > field.max_value:
            return f"{field.label} kan ikke være større enn {field.max_value:g}"

    if isinstance(value, str):
        if field.min_length is not None and len(value) < field.min_length:
            return f"{field.label} må være minst {field.min_length} tegn"
        if field.max_length is not None and len(value) > field.max_length:
            return f"{field.label} kan ikke være lengre enn {field.max_length} tegn"
        if field.pattern and not re.fullmatch(field.pattern, value):
            return f"{field.label} har ugyldig format"

    if field_type in OPTION_FIELD_TYPES and field.options:
        allowed = set(field.option_values)
        values = value if isinstance(value, (list, tuple)) else [value]
        if any(str(v) not in allowed for v in values):
            return f"Ugyldig valg for {field.label}"

    return None


def validate_submission(fields: Iterable, data: Dict[str, Any]) -> Dict[str, str]:
    """Validate submitted data against form fields.

    Args:
        fields: ``FormField`` rows of the form
        data: Submitted field values keyed by field name

    Returns:
        Dict of field name to error message (empty when valid)
    """
    errors: Dict[str, str] = {}
    for field in fields:
        if FieldType(field.type) in LAYOUT_FIELD_TYPES:
            continue
        error = validate_field(field, data.get(field.name))
        if error:
            errors[field.name] = error
    return errors

