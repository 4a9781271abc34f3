"""Time helpers shared by the logger, the job controller and the API."""

from __future__ import annotations

import datetime
import time
from typing import Optional, Union

import ciso8601

UTC = datetime.timezone.utc


def time_s() -> float:
    """Return the current wall-clock time in seconds as a float."""

    return time.time()


def utc_now() -> datetime.datetime:
    """Return the current timezone-aware UTC datetime."""

    return datetime.datetime.now(UTC)


def time_iso8601() -> str:
    """Return the current UTC time formatted as ``YYYY-MM-DDTHH:MM:SS.fffZ``."""

    dt = datetime.datetime.now(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def normalize_datetime(value: Optional[Union[str, datetime.datetime]]) -> Optional[datetime.datetime]:
    """Coerce an ISO-8601 string or datetime into an aware UTC datetime.

    Naive datetimes (as returned by pymongo without ``tz_aware``) are
    assumed to already be expressed in UTC.

    :param value: Either ``None``, an ISO string, or a ``datetime`` instance.
    :return: Parsed datetime or ``None`` if the input was ``None``.
    :raises ValueError: If the string cannot be parsed into a datetime.
    :raises TypeError: If an unsupported type is supplied.
    """

    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = ciso8601.parse_datetime(value)
        except ValueError as exc:
            raise ValueError(f"Invalid datetime string: {value}") from exc
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    raise TypeError(f"Unsupported datetime type: {type(value)!r}")
