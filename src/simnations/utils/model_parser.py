"""Helpers for flattening dataclass instances into JSON-ready dictionaries."""

from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict


def model_parser(dataclass_obj: Any) -> Dict[str, Any]:
    """Convert a dataclass instance into a plain dictionary.

    Nested dataclasses, tuples/lists, enums and datetimes are converted
    recursively so the result can be handed straight to a JSON encoder.

    :param dataclass_obj: Dataclass instance to serialise.
    :return: Dictionary mapping field names to their values.
    :raises TypeError: If ``dataclass_obj`` is not a dataclass instance.
    """

    if not is_dataclass(dataclass_obj) or isinstance(dataclass_obj, type):
        raise TypeError("Input must be a dataclass")

    return {field.name: _to_primitive(getattr(dataclass_obj, field.name)) for field in fields(dataclass_obj)}


def _to_primitive(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return model_parser(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_to_primitive(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_primitive(v) for k, v in value.items()}
    return value
