"""Strict casting helpers for parsing primitive configuration values."""

from typing import Any, Optional

_TRUE = {"1", "true", "t", "yes", "y", "on"}
_FALSE = {"0", "false", "f", "no", "n", "off"}


def to_bool(value: Any) -> bool:
    """Parse booleans from strings while rejecting ambiguous values.

    :param value: Value to convert; accepts bools or truthy/falsy strings.
    :return: Parsed boolean value.
    :raises ValueError: If ``value`` cannot be interpreted as a boolean.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE:  return True
        if s in _FALSE: return False
    raise ValueError(f"Cannot strictly parse bool from: {value!r}")


def to_positive_int(value: Any, *, name: str, allow_zero: bool = False) -> int:
    """Parse an integer tunable, rejecting bools, floats and negatives.

    :param value: Raw value from YAML or the environment.
    :param name: Setting name used in error messages.
    :param allow_zero: Whether ``0`` is an acceptable value.
    :return: Parsed integer.
    :raises ValueError: If the value is not an acceptable integer.
    """
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        parsed = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    floor = 0 if allow_zero else 1
    if parsed < floor:
        raise ValueError(f"{name} must be >= {floor}, got {parsed}")
    return parsed


def to_positive_float(value: Any, *, name: str, allow_zero: bool = False) -> float:
    """Parse a float tunable such as a timeout or a backoff delay."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if parsed < 0 or (parsed == 0 and not allow_zero):
        raise ValueError(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {parsed}")
    return parsed


def optional_str(value: Optional[str]) -> Optional[str]:
    """Treat blank strings from ``.env`` files as unset."""
    if value is None:
        return None
    value = value.strip()
    return value or None
