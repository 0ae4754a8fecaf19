"""
Response shaping: strip transport metadata and impose a canonical key order.
"""

from typing import Any, Dict

from .constants import ODATA_METADATA_KEY, PRIMARY_KEY


def normalize_record(record: Any, sort_keys: bool = True) -> Any:
    """
    Remove the OData metadata key and reorder the remaining keys.

    The primary identifier always comes first; the other keys are sorted when
    ``sort_keys`` is set and otherwise keep the order they were received in.
    Values are copied by reference and nested objects are left alone.
    Anything that is not a dict is returned unchanged.
    """
    if not isinstance(record, dict):
        return record

    keys = [key for key in record if key != ODATA_METADATA_KEY]
    if sort_keys:
        keys.sort()

    cleaned: Dict[str, Any] = {}
    if PRIMARY_KEY in record:
        cleaned[PRIMARY_KEY] = record[PRIMARY_KEY]
        keys.remove(PRIMARY_KEY)
    for key in keys:
        cleaned[key] = record[key]
    return cleaned


def strip_null_values(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively drop None-valued fields. Lists are kept as they are."""
    result: Dict[str, Any] = {}
    for key, value in obj.items():
        if value is None:
            continue
        if isinstance(value, dict):
            result[key] = strip_null_values(value)
        else:
            result[key] = value
    return result


def shape_record(record: Any, sort_keys: bool = True, strip_null: bool = False) -> Any:
    """Normalize a record and optionally strip nulls, as every list handler does."""
    shaped = normalize_record(record, sort_keys)
    if strip_null and isinstance(shaped, dict):
        shaped = strip_null_values(shaped)
    return shaped
