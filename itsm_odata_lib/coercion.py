"""
Converts loosely typed field assignments into a typed JSON payload.
"""

import json
import math
import re
from typing import Any, Dict, Iterable, Tuple

from .errors import FieldValidationError
from .models import Assignment


def describe_value(value: Any) -> str:
    """Human readable description of a value for validation messages."""
    if isinstance(value, dict):
        return "an object"
    if isinstance(value, list):
        return "an array"
    if isinstance(value, bool):
        return f"'{str(value).lower()}'"
    return f"'{value}'"


def _to_string(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# Plain decimal notation only; rejects digit separators and inf/nan spellings
NUMBER_PATTERN = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')


def _to_number(value: Any) -> Tuple[bool, Any]:
    if isinstance(value, bool):
        return False, value
    if isinstance(value, (int, float)):
        return not (isinstance(value, float) and not math.isfinite(value)), value
    if not isinstance(value, str) or not value.strip():
        return False, value
    text = value.strip()
    if not NUMBER_PATTERN.match(text):
        return False, value
    try:
        return True, int(text)
    except ValueError:
        pass
    number = float(text)
    if not math.isfinite(number):
        return False, value
    return True, number


def _to_boolean(value: Any) -> Tuple[bool, Any]:
    if isinstance(value, bool):
        return True, value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True, True
        if lowered == "false":
            return True, False
    return False, value


def _to_container(value: Any, container: type) -> Tuple[bool, Any]:
    if isinstance(value, container):
        return True, value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return False, value
        if isinstance(parsed, container):
            return True, parsed
    return False, value


def coerce_value(name: str, field_type: str, value: Any, item_index: int,
                 ignore_errors: bool = False) -> Any:
    """
    Convert one value to its declared type.

    None always passes through as None. On a mismatch the original value is
    returned when ``ignore_errors`` is set, otherwise FieldValidationError is raised.
    """
    if value is None:
        return None

    if field_type == "string":
        return _to_string(value)
    if field_type == "number":
        valid, converted = _to_number(value)
    elif field_type == "boolean":
        valid, converted = _to_boolean(value)
    elif field_type == "array":
        valid, converted = _to_container(value, list)
    elif field_type == "object":
        valid, converted = _to_container(value, dict)
    else:
        return value

    if valid:
        return converted
    if ignore_errors:
        return value
    raise FieldValidationError(name, field_type, describe_value(value), item_index)


def coerce_assignments(assignments: Iterable[Assignment], item_index: int = 0,
                       ignore_errors: bool = False) -> Dict[str, Any]:
    """Build a create/update payload from ordered field assignments."""
    payload: Dict[str, Any] = {}
    for assignment in assignments:
        if not assignment.type:
            payload[assignment.name] = assignment.value
            continue
        payload[assignment.name] = coerce_value(
            assignment.name, assignment.type, assignment.value, item_index, ignore_errors)
    return payload
